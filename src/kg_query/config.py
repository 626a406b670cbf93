"""
Central configuration for graph queries and hybrid search.
"""
import logging
from pathlib import Path
from typing import Optional

from pydantic import BaseModel


class Settings(BaseModel):
    data_dir: Path = Path("data")
    db_path: Path = data_dir / "graph.db"
    embedding_dim: int = 384

    # hybrid search
    default_fts_weight: float = 0.5
    default_vector_weight: float = 0.5
    overlap_boost: float = 1.2
    vector_threshold: float = 0.7
    vector_k: int = 10
    probe_size: int = 5
    empty_probe_quality: float = 0.1
    concurrent_search: bool = True
    search_timeout_seconds: Optional[float] = None

    # traversal
    min_hops: int = 1
    max_hops: int = 3
    default_path_hops: int = 5

    # paging
    default_page_size: int = 10
    max_page_size: int = 100

    log_level: str = "INFO"


settings = Settings()


def ensure_directories() -> None:
    """
    Create the data folder if missing.
    """
    settings.data_dir.mkdir(exist_ok=True)


def configure_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format="%(asctime)s - %(name)s - [%(levelname)s] - %(message)s",
        datefmt="%H:%M:%S",
    )
