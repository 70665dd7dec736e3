"""
Configuration management for the storefront.

Loads settings from YAML config file and provides typed access.
Connection settings (SUPABASE_URL, SUPABASE_KEY, DATABASE_URL) always come
from the environment so secrets stay out of the config file.
"""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
import yaml

# Load environment variables from .env file
from dotenv import load_dotenv
load_dotenv()


def _project_root() -> Path:
    """Return project root (parent of storefront package)."""
    return Path(__file__).resolve().parent.parent.parent


DEFAULT_CONFIG_PATH = _project_root() / "config" / "default.yaml"


@dataclass
class StorefrontConfig:
    """Configuration for the storefront."""

    # Backing store
    supabase_url: str = ""
    supabase_key: str = ""
    database_url: str = ""
    products_table: str = "products"
    wishlists_table: str = "wishlists"
    profiles_table: str = "profiles"
    orders_table: str = "orders"

    # Catalog
    catalog_max_price: int = 5000           # Upper end of the price slider; also "no upper bound"
    default_delivery_time: str = "3-5-days"  # Shown when a product has no delivery bucket

    # Fetching
    fetch_timeout_s: float = 10.0

    # Client-local storage
    cart_db_path: str = "data/cart.db"

    # Checkout simulation
    payment_delay_s: float = 2.0

    @classmethod
    def from_yaml(cls, config_path: Optional[Path] = None) -> "StorefrontConfig":
        """Load configuration from YAML file, then apply environment overrides."""
        path = config_path or DEFAULT_CONFIG_PATH
        data = {}
        if path.exists():
            with open(path, 'r') as f:
                data = yaml.safe_load(f) or {}

        store_config = data.get('store', {})
        catalog_config = data.get('catalog', {})
        fetch_config = data.get('fetch', {})
        cart_config = data.get('cart', {})
        checkout_config = data.get('checkout', {})

        config = cls(
            products_table=store_config.get('products_table', 'products'),
            wishlists_table=store_config.get('wishlists_table', 'wishlists'),
            profiles_table=store_config.get('profiles_table', 'profiles'),
            orders_table=store_config.get('orders_table', 'orders'),
            catalog_max_price=int(catalog_config.get('max_price', 5000)),
            default_delivery_time=catalog_config.get('default_delivery_time', '3-5-days'),
            fetch_timeout_s=float(fetch_config.get('timeout_s', 10.0)),
            cart_db_path=cart_config.get('db_path', 'data/cart.db'),
            payment_delay_s=float(checkout_config.get('payment_delay_s', 2.0)),
        )
        config.supabase_url = os.environ.get("SUPABASE_URL", "")
        config.supabase_key = os.environ.get("SUPABASE_KEY", "")
        config.database_url = os.environ.get("DATABASE_URL", "")
        return config


# Global config instance
_config: Optional[StorefrontConfig] = None


def get_config() -> StorefrontConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = StorefrontConfig.from_yaml()
    return _config


def set_config(config: StorefrontConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
