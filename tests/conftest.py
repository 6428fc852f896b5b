import sys
from dataclasses import dataclass
from pathlib import Path

import pytest

# Lambda code imports its packages (shared, rates, tracking) from src/
_root = Path(__file__).resolve().parents[1]
if str(_root / "src") not in sys.path:
    sys.path.insert(0, str(_root / "src"))


@dataclass
class StubLambdaContext:
    function_name: str = "freight-portal-test"
    memory_limit_in_mb: int = 128
    invoked_function_arn: str = "arn:aws:lambda:us-east-1:123456789012:function:freight-portal-test"
    aws_request_id: str = "52fdfc07-2182-154f-163f-5f0f9a621d72"


@pytest.fixture
def lambda_context() -> StubLambdaContext:
    return StubLambdaContext()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Tests never see real credentials or a real rate table."""
    for key in (
        "SUPABASE_URL",
        "SUPABASE_KEY",
        "RATE_TABLE_PATH",
        "TRACKING_CARRIERS",
        "TRACKING_PARALLEL_DISCOVERY",
        "FEDEX_API_KEY",
        "FEDEX_SECRET_KEY",
        "UPS_API_KEY",
        "UPS_SECRET_KEY",
        "DHL_API_KEY",
        "DHL_SECRET_KEY",
    ):
        monkeypatch.delenv(key, raising=False)
