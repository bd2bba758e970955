# Tools module
from .llm_service import LLMService
from .provider_manager import ProviderManager
from .translator import TranslatorTool, decode_obfuscated
from .follower_tool import FollowerTool
from .thumbnail_tool import ThumbnailTool
from .status_cache import StatusCache
from .parallel import parallel_map, ParallelOutcome
from .text_normalizer import (
    compress_whitespace,
    normalize_text,
    contains_normalized,
    split_words,
)

__all__ = [
    # LLM
    "LLMService",
    "ProviderManager",
    # External lookups / enrichment
    "TranslatorTool",
    "decode_obfuscated",
    "FollowerTool",
    "ThumbnailTool",
    # Caching / concurrency
    "StatusCache",
    "parallel_map",
    "ParallelOutcome",
    # Text utils
    "compress_whitespace",
    "normalize_text",
    "contains_normalized",
    "split_words",
]
