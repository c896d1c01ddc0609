"""Smoke tests: verify the package is wired up correctly.

They ensure that:
1. All modules can be imported without errors
2. The FastAPI app starts up properly
3. Configuration loads with default values

This is the first thing CI runs, so if these fail, nothing else will work.
"""

from fastapi.testclient import TestClient


def test_imports() -> None:
    """Verify all modules can be imported without crashing."""
    import ehr_connect  # noqa: F401
    import ehr_connect.app  # noqa: F401
    import ehr_connect.audit  # noqa: F401
    import ehr_connect.cipher  # noqa: F401
    import ehr_connect.config  # noqa: F401
    import ehr_connect.credentials  # noqa: F401
    import ehr_connect.demo  # noqa: F401
    import ehr_connect.fhir_client  # noqa: F401
    import ehr_connect.fhir_models  # noqa: F401
    import ehr_connect.normalizer  # noqa: F401
    import ehr_connect.oauth  # noqa: F401
    import ehr_connect.service  # noqa: F401
    import ehr_connect.store  # noqa: F401
    import ehr_connect.sync  # noqa: F401
    import ehr_connect.tokens  # noqa: F401


def test_config_defaults() -> None:
    """Config should load with sensible defaults even without a .env file."""
    from ehr_connect.config import (
        AUDIT_RETENTION_DAYS,
        EHR_DEMO_PRINCIPAL,
        FHIR_PAGE_SIZE,
        FHIR_SEARCH_LIMIT,
        SNAPSHOT_RETENTION_DAYS,
    )

    assert EHR_DEMO_PRINCIPAL == "demo.doctor@amma.health"
    assert FHIR_PAGE_SIZE == 50
    assert FHIR_SEARCH_LIMIT == 20
    assert SNAPSHOT_RETENTION_DAYS == 30
    assert AUDIT_RETENTION_DAYS == 90


def test_health_endpoint() -> None:
    """The /health endpoint should return 200 OK."""
    from ehr_connect.app import app

    client = TestClient(app)
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
