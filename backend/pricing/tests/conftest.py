import pytest

from ..services.config import clear_pricing_defaults_cache


@pytest.fixture(autouse=True)
def fresh_pricing_defaults():
    """Every test starts from the shipped defaults file."""
    clear_pricing_defaults_cache()
    yield
    clear_pricing_defaults_cache()
