from unified_replication.__main__ import main

if __name__ == '__main__':
    main()
