from dataclasses import dataclass
import os

from dotenv import load_dotenv

from .paths import ROOT

load_dotenv(ROOT / ".env", override=False)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    environment: str = os.getenv("ENVIRONMENT", "dev")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    random_seed: int = int(os.getenv("RANDOM_SEED", "42"))

    # MNIST lecture
    mnist_train_size: int = int(os.getenv("MNIST_TRAIN_SIZE", "10000"))
    mnist_test_size: int = int(os.getenv("MNIST_TEST_SIZE", "2000"))
    epochs: int = int(os.getenv("EPOCHS", "5"))
    batch_size: int = int(os.getenv("BATCH_SIZE", "128"))
    validation_split: float = float(os.getenv("VALIDATION_SPLIT", "0.2"))
    learning_rate: float = float(os.getenv("LEARNING_RATE", "0.001"))
    use_gpu: bool = _env_bool("USE_GPU", "true")

    # Listings dashboard
    listings_file: str = os.getenv("LISTINGS_FILE", "listings.csv")
    map_max_points: int = int(os.getenv("MAP_MAX_POINTS", "1000"))
    price_quantile: float = float(os.getenv("PRICE_QUANTILE", "0.99"))


settings = Settings()

__all__ = ["Settings", "settings"]
