from .backend import (
    ChatTextGenerator,
    TextGenerator,
    _extract_first_json_array,
    _extract_first_json_object,
    _handle_sdk_exception,
)
from .batch import split_batch_response, translate_batch
from .optimizer import (
    TranslationOptimizer,
    build_optimization_prompt,
    build_run_context,
    group_consecutive_speakers,
    length_deviation,
    within_length_tolerance,
)

__all__ = [
    "ChatTextGenerator",
    "TextGenerator",
    "TranslationOptimizer",
    "build_optimization_prompt",
    "build_run_context",
    "group_consecutive_speakers",
    "length_deviation",
    "split_batch_response",
    "translate_batch",
    "within_length_tolerance",
    "_extract_first_json_array",
    "_extract_first_json_object",
    "_handle_sdk_exception",
]
