"""Configuration management.

``Settings`` is a **metaclass-based singleton**: the first call to
``Settings.load()`` creates the instance; every later call returns
the same object.  Use ``update()`` to change values at runtime, or
``reload()`` to re-read everything from disk.

All user-editable configuration lives under ``.metadata/``:

* ``app.yaml``           – server, database, arXiv and HTTP options
* ``llm_profiles.yaml``  – chat-completion provider credentials

On first run, missing files are copied from ``.metadata.example/``.
"""

import logging
import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

logger = logging.getLogger(__name__)

API_KEY_ENV = "PAPERCHAT_LLM_API_KEY"


# ---------------------------------------------------------------------------
# LLM Profile dataclasses
# ---------------------------------------------------------------------------

@dataclass
class LLMModel:
    """A single model entry from the built-in registry."""

    id: str
    name: str
    provider_id: str
    provider_name: str
    base_url: str
    context_window: int = 0
    max_output: int = 0


@dataclass
class LLMProfile:
    """A single LLM provider credential."""

    id: str
    name: str
    model: str
    api_key: str


# ---------------------------------------------------------------------------
# Singleton metaclass
# ---------------------------------------------------------------------------

class _SettingsMeta(type):
    """Metaclass that enforces a process-wide singleton for *Settings*.

    * First ``Settings(...)`` creates and caches the instance.
    * Later ``Settings(...)`` calls return the cached instance (args ignored).
    """

    _instances: dict[type, Any] = {}

    def __call__(cls, *args: Any, **kwargs: Any) -> Any:
        if cls not in cls._instances:
            cls._instances[cls] = super().__call__(*args, **kwargs)
        return cls._instances[cls]


# ---------------------------------------------------------------------------
# Settings dataclass (singleton)
# ---------------------------------------------------------------------------

@dataclass
class Settings(metaclass=_SettingsMeta):
    """Application settings: a singleton with runtime-mutable values.

    Usage::

        settings = Settings.load()          # first call → create
        settings = Settings.load()          # later → same object
        settings.update(db_path=Path(...))  # runtime change
        settings = Settings.reload()        # re-read from disk
    """

    db_path: Path = Path("paperchat.db")
    metadata_dir: Path = Path(".metadata")

    # Web server / client
    host: str = "127.0.0.1"
    port: int = 8000
    api_base_url: str = "http://127.0.0.1:8000"
    session_days: int = 30
    http_timeout: float = 20.0

    # arXiv
    arxiv_base_url: str = "http://export.arxiv.org/api/query"
    arxiv_max_results: int = 15

    # LLM profiles
    llm_profiles: list[LLMProfile] = field(default_factory=list)
    active_llm_id: Optional[str] = None

    # ── Computed properties ────────────────────────────────────────────

    @property
    def active_llm(self) -> Optional[LLMProfile]:
        """Return the currently active LLM profile, or None."""
        if not self.active_llm_id:
            return None
        return next(
            (p for p in self.llm_profiles if p.id == self.active_llm_id),
            None,
        )

    @property
    def active_llm_model(self) -> Optional[LLMModel]:
        """Registry entry for the active profile's model, if known."""
        profile = self.active_llm
        if profile is None:
            return None
        return find_llm_model(profile.model)

    # ── Runtime helpers ───────────────────────────────────────────────

    def update(self, **kwargs: Any) -> None:
        """Mutate settings fields at runtime.

        >>> Settings.load().update(db_path=Path("/tmp/test.db"))
        """
        for key, value in kwargs.items():
            if not hasattr(self, key):
                raise AttributeError(f"Settings has no field '{key}'")
            setattr(self, key, value)

    # ── Factory / lifecycle ───────────────────────────────────────────

    @classmethod
    def load(cls, base_dir: Optional[Path] = None) -> "Settings":
        """Load or return the singleton Settings instance.

        On first call the singleton is created; subsequent calls return
        the cached instance.  Pass *base_dir* to override the project
        root (defaults to the repository root one level above ``paperchat/``).
        """
        if cls in _SettingsMeta._instances:
            return _SettingsMeta._instances[cls]  # type: ignore[return-value]

        if base_dir is None:
            base_dir = Path(__file__).resolve().parent.parent

        metadata_dir = base_dir / ".metadata"
        cls._ensure_default_files(base_dir, metadata_dir)

        app = _load_app_config(metadata_dir / "app.yaml")
        llm_profiles, active_llm_id = _load_llm_profiles(
            metadata_dir / "llm_profiles.yaml"
        )
        _apply_env_api_key(llm_profiles, active_llm_id)

        host = str(app.get("host", "127.0.0.1"))
        port = int(app.get("port", 8000))
        return cls(
            db_path=base_dir / str(app.get("database", "paperchat.db")),
            metadata_dir=metadata_dir,
            host=host,
            port=port,
            api_base_url=str(app.get("api_base_url") or f"http://{host}:{port}"),
            session_days=int(app.get("session_days", 30)),
            http_timeout=float(app.get("http_timeout", 20.0)),
            arxiv_base_url=str(
                app.get("arxiv_base_url", "http://export.arxiv.org/api/query")
            ),
            arxiv_max_results=int(app.get("arxiv_max_results", 15)),
            llm_profiles=llm_profiles,
            active_llm_id=active_llm_id,
        )

    @classmethod
    def reload(cls, base_dir: Optional[Path] = None) -> "Settings":
        """Discard the current singleton and re-load from disk."""
        cls.reset()
        return cls.load(base_dir)

    @classmethod
    def reset(cls) -> None:
        """Discard the singleton so the next ``load()`` re-creates it."""
        _SettingsMeta._instances.pop(cls, None)

    # ── Private ───────────────────────────────────────────────────────

    @staticmethod
    def _ensure_default_files(base_dir: Path, metadata_dir: Path) -> None:
        """Copy ``.metadata.example/`` templates when real files are missing."""
        metadata_dir.mkdir(parents=True, exist_ok=True)

        example_dir = base_dir / ".metadata.example"
        if not example_dir.exists():
            return

        for example_file in example_dir.iterdir():
            if example_file.is_file():
                target = metadata_dir / example_file.name
                if not target.exists():
                    shutil.copy2(example_file, target)
                    logger.info("Created .metadata/%s from template", example_file.name)


# ---------------------------------------------------------------------------
# YAML loaders
# ---------------------------------------------------------------------------

def _load_app_config(path: Path) -> dict[str, Any]:
    """Load server/database/arXiv options from ``app.yaml``."""
    if not path.exists():
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        logger.warning("Could not read %s: %s", path, e)
        return {}
    return data if isinstance(data, dict) else {}


def _load_llm_profiles(path: Path) -> tuple[list[LLMProfile], Optional[str]]:
    """Load LLM profiles from ``llm_profiles.yaml``.

    Returns:
        Tuple of (profiles list, active profile id)
    """
    if not path.exists():
        return [], None
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        logger.warning("Could not read %s: %s", path, e)
        return [], None
    if not isinstance(data, dict):
        return [], None

    active_id = data.get("active") or None
    raw_profiles = data.get("profiles") or []
    profiles = []
    for p in raw_profiles:
        if isinstance(p, dict) and p.get("id") and p.get("model"):
            profiles.append(
                LLMProfile(
                    id=str(p["id"]),
                    name=str(p.get("name", p["model"])),
                    model=str(p["model"]),
                    api_key=str(p.get("api_key") or ""),
                )
            )
    return profiles, active_id


def _apply_env_api_key(profiles: list[LLMProfile], active_id: Optional[str]) -> None:
    """Let ``PAPERCHAT_LLM_API_KEY`` override the active profile's key."""
    key = os.environ.get(API_KEY_ENV)
    if not key:
        return
    for p in profiles:
        if p.id == active_id:
            p.api_key = key


def load_llm_models() -> list[LLMModel]:
    """Load the built-in LLM model registry from ``paperchat/data/llm_models.yaml``.

    This is **application data** (ships with the package), not user config.
    The completion client resolves a profile's provider base URL from it.
    """
    registry_path = Path(__file__).resolve().parent / "data" / "llm_models.yaml"
    if not registry_path.exists():
        return []
    with open(registry_path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if not isinstance(data, dict):
        return []

    models: list[LLMModel] = []
    for provider in data.get("providers") or []:
        pid = provider.get("id", "")
        pname = provider.get("name", "")
        base_url = provider.get("base_url", "")
        for m in provider.get("models") or []:
            models.append(
                LLMModel(
                    id=str(m["id"]),
                    name=str(m.get("name", m["id"])),
                    provider_id=pid,
                    provider_name=pname,
                    base_url=base_url,
                    context_window=int(m.get("context_window", 0)),
                    max_output=int(m.get("max_output", 0)),
                )
            )
    return models


def find_llm_model(model_id: str) -> Optional[LLMModel]:
    """Look up *model_id* in the built-in registry."""
    return next((m for m in load_llm_models() if m.id == model_id), None)
