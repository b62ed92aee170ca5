from .engine import TranslationEngine
from .validator import MappingStatistics, TranslationValidator

__all__ = ["TranslationEngine", "TranslationValidator", "MappingStatistics"]
