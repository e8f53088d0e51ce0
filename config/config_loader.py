"""Load settings.yaml into typed dataclasses. Reports API key presence at startup."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"

_PERSONA_SCOPES = ("all", "synthesize")


@dataclass
class BackendConfig:
    sdk: str
    api_key_env: str
    timeout_sec: int
    max_tokens: int
    models: dict[str, str] = field(default_factory=dict)   # model tier -> model string
    base_url: str | None = None

    @property
    def image_models(self) -> set[str]:
        image = self.models.get("image")
        return {image} if image else set()


@dataclass
class PromptsConfig:
    draft: str
    refine: str
    synthesize: str
    title: str = ""


@dataclass
class PersonaConfig:
    name: str
    instruction: str
    default_mode: str | None = None


@dataclass
class DefaultsConfig:
    mode: str
    persona: str
    output_dir: Path
    run_timeout_sec: float | None = None
    persona_scope: str = "all"


@dataclass
class AppConfig:
    defaults: DefaultsConfig
    backend: BackendConfig
    prompts: PromptsConfig
    personas: dict[str, PersonaConfig] = field(default_factory=dict)
    api_key_available: bool = False


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if settings file missing, ValueError on invalid
    values. A missing API key is logged but does not raise; callers check
    api_key_available.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    defaults_raw = raw["defaults"]
    run_timeout = defaults_raw.get("run_timeout_sec")
    defaults = DefaultsConfig(
        mode=str(defaults_raw["mode"]),
        persona=str(defaults_raw["persona"]),
        output_dir=Path(defaults_raw["output_dir"]),
        run_timeout_sec=float(run_timeout) if run_timeout is not None else None,
        persona_scope=str(defaults_raw.get("persona_scope", "all")),
    )
    if defaults.persona_scope not in _PERSONA_SCOPES:
        raise ValueError(
            f"persona_scope must be one of {', '.join(_PERSONA_SCOPES)}, got '{defaults.persona_scope}'"
        )

    backend_raw = raw["backend"]
    backend = BackendConfig(
        sdk=str(backend_raw["sdk"]),
        api_key_env=str(backend_raw["api_key_env"]),
        timeout_sec=int(backend_raw["timeout_sec"]),
        max_tokens=int(backend_raw["max_tokens"]),
        models={str(k): str(v) for k, v in backend_raw["models"].items()},
        base_url=backend_raw.get("base_url"),
    )

    prompts_raw = raw["prompts"]
    prompts = PromptsConfig(
        draft=prompts_raw["draft"],
        refine=prompts_raw["refine"],
        synthesize=prompts_raw["synthesize"],
        title=prompts_raw.get("title", ""),
    )

    personas: dict[str, PersonaConfig] = {}
    for persona_name, persona_raw in (raw.get("personas") or {}).items():
        if isinstance(persona_raw, str):
            persona_raw = {"instruction": persona_raw}
        personas[persona_name] = PersonaConfig(
            name=persona_name,
            instruction=str(persona_raw.get("instruction", "")),
            default_mode=persona_raw.get("default_mode"),
        )

    api_key_available = bool(os.environ.get(backend.api_key_env, "").strip())
    if api_key_available:
        logger.info("Backend available: %s", backend.sdk)
    else:
        logger.info(
            "Backend %s has no API key, set %s in .env",
            backend.sdk,
            backend.api_key_env,
        )

    return AppConfig(
        defaults=defaults,
        backend=backend,
        prompts=prompts,
        personas=personas,
        api_key_available=api_key_available,
    )
