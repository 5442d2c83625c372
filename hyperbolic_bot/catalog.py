from dataclasses import dataclass
from enum import Enum


class Category(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    AUDIO = "audio"


@dataclass(frozen=True)
class ModelDescriptor:
    key: str
    category: Category
    display_name: str
    api_model_name: str | None = None
    max_tokens: int | None = None
    temperature: float | None = None
    top_p: float | None = None


MODELS = (
    ModelDescriptor("meta_llama", Category.TEXT, "🦙 Meta Llama 3.1 8B",
                    "meta-llama/Meta-Llama-3.1-8B-Instruct", max_tokens=2048, temperature=0.7, top_p=0.9),
    ModelDescriptor("deepseek", Category.TEXT, "🔍 DeepSeek V3",
                    "deepseek-ai/DeepSeek-V3", max_tokens=512, temperature=0.1, top_p=0.9),
    ModelDescriptor("hermes", Category.TEXT, "⚡️ Hermes-3-Llama-3.1-70B",
                    "NousResearch/Hermes-3-Llama-3.1-70B", max_tokens=2048, temperature=0.7, top_p=0.9),
    ModelDescriptor("qwen", Category.TEXT, "💻 Qwen2.5-Coder-32B-Instruct",
                    "Qwen/Qwen2.5-Coder-32B-Instruct", max_tokens=512, temperature=0.1, top_p=0.9),
    ModelDescriptor("flux", Category.IMAGE, "🎨 FLUX.1-dev", "FLUX.1-dev"),
    ModelDescriptor("sd2", Category.IMAGE, "🖼 SD2", "SD2"),
    ModelDescriptor("melo_tts", Category.AUDIO, "🔊 Melo TTS"),
)

_BY_KEY = {model.key: model for model in MODELS}
if len(_BY_KEY) != len(MODELS):
    raise ValueError("Model keys must be unique")


def get_model(key: str | None) -> ModelDescriptor | None:
    if not key:
        return None
    return _BY_KEY.get(key)


def models_in(category: Category) -> list[ModelDescriptor]:
    return [model for model in MODELS if model.category == category]


def lookup_category(key: str | None) -> Category | None:
    model = get_model(key)
    return model.category if model else None
