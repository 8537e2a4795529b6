"""Static catalog of selectable models. The first entry is the default for new conversations."""

from dataclasses import asdict, dataclass


@dataclass(frozen=True)
class ModelInfo:
    id: str
    name: str
    description: str
    free: bool
    context_length: int
    supports_vision: bool

    def to_dict(self) -> dict:
        data = asdict(self)
        data["contextLength"] = data.pop("context_length")
        data["supportsVision"] = data.pop("supports_vision")
        return data


MODELS: list[ModelInfo] = [
    ModelInfo("openrouter/free", "Free Models Router", "Automatically picks from available free models", True, 128000, True),
    ModelInfo("openai/gpt-oss-120b:free", "GPT-OSS 120B", "OpenAI open-source 120B model", True, 128000, False),
    ModelInfo("qwen/qwen3-coder:free", "Qwen3 Coder 480B", "Large coding-focused model by Qwen", True, 65536, False),
    ModelInfo("nvidia/nemotron-nano-12b-v2-vl:free", "Nemotron Nano 12B VL", "NVIDIA vision-language model", True, 32768, True),
    ModelInfo("google/gemma-3n-e2b-it:free", "Gemma 3n 2B", "Lightweight Google model", True, 32768, False),
    ModelInfo("openrouter/auto", "Auto (Smart Routing)", "Picks the best model (may cost credits)", False, 128000, True),
]


def get_models() -> list[ModelInfo]:
    return MODELS


def get_model(model_id: str) -> ModelInfo | None:
    return next((m for m in MODELS if m.id == model_id), None)
