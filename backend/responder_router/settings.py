from __future__ import annotations

from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_USERNAME_DENYLIST = "test,placeholder,example,demo,admin"


def _default_out_dir() -> str:
    return str(Path(__file__).resolve().parents[1] / "out")


def _default_waypoint_asset_path() -> str:
    # Shipped with the backend so a fresh checkout can route without extra setup.
    return str(Path(__file__).resolve().parents[1] / "assets" / "waypoints.json")


class Settings(BaseSettings):
    """Validated settings (env-driven), keeping config out of code for easy extension."""

    model_config = SettingsConfigDict(
        # Support both "repo root/.env" and "backend/.env" (local dev)
        env_file=(".env", "../.env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    out_dir: str = Field(default_factory=_default_out_dir, alias="OUT_DIR")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    waypoint_asset_path: str = Field(
        default_factory=_default_waypoint_asset_path,
        alias="WAYPOINT_ASSET_PATH",
    )
    default_start_node: str = Field(default="defaultStartNode", alias="DEFAULT_START_NODE")

    # Nearest static waypoints linked to every inserted incident node.
    incident_neighbor_count: int = Field(default=3, ge=1, le=16, alias="INCIDENT_NEIGHBOR_COUNT")
    route_alternatives: int = Field(default=3, ge=1, le=10, alias="ROUTE_ALTERNATIVES")
    incident_username_denylist: str = Field(
        default=DEFAULT_USERNAME_DENYLIST,
        alias="INCIDENT_USERNAME_DENYLIST",
    )

    # Periodic snapshot refresh of the active incident list. Empty URL disables polling.
    incident_feed_url: str = Field(default="", alias="INCIDENT_FEED_URL")
    incident_feed_token: str = Field(default="", alias="INCIDENT_FEED_TOKEN")
    incident_feed_refresh_s: float = Field(default=30.0, ge=1.0, le=3600.0, alias="INCIDENT_FEED_REFRESH_S")
    incident_feed_timeout_s: float = Field(default=10.0, ge=1.0, le=120.0, alias="INCIDENT_FEED_TIMEOUT_S")

    @model_validator(mode="after")
    def _normalise(self) -> "Settings":
        self.default_start_node = str(self.default_start_node or "").strip() or "defaultStartNode"
        self.incident_feed_url = str(self.incident_feed_url or "").strip()
        return self

    @property
    def username_denylist(self) -> frozenset[str]:
        raw = str(self.incident_username_denylist or "")
        return frozenset(item.strip().lower() for item in raw.split(",") if item.strip())


settings = Settings()
