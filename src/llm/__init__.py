from src.llm.factory import (
    ModelSelection,
    ModelSelector,
    ProviderPreferences,
    build_model_selector,
    clear_llm_cache,
)
