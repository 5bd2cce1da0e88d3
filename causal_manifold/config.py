from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── App ──────────────────────────────────────────────
    app_name: str = "CausalManifold"
    app_version: str = "0.1.0"
    debug: bool = False
    api_key: str = "changeme"

    # ── Geometric transformer defaults ───────────────────
    transformer_embedding_dim: int = Field(default=128, ge=1)
    transformer_hidden_dim: int = Field(default=256, ge=1)
    transformer_num_heads: int = Field(default=4, ge=1)
    transformer_num_layers: int = Field(default=2, ge=1)
    transformer_use_layer_norm: bool = True
    transformer_seed: int = 0

    # ── UMAP projector defaults ──────────────────────────
    umap_n_components: int = 3
    umap_n_neighbors: int = 15
    umap_min_dist: float = 0.1
    umap_metric: str = "euclidean"
    umap_spread: float = 1.0
    umap_random_state: int = 42

    # ── Post-processing ──────────────────────────────────
    projection_range_min: float = -50.0
    projection_range_max: float = 50.0

    # ── Request guards ───────────────────────────────────
    min_nodes: int = 2
    max_nodes: int = 5000

    # ── Server ───────────────────────────────────────────
    host: str = "0.0.0.0"
    port: int = 8000

    @property
    def projection_range(self) -> tuple[float, float]:
        return (self.projection_range_min, self.projection_range_max)


settings = Settings()
