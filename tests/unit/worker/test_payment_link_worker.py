"""Unit tests for PaymentLinkWorker"""

import pytest
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock, patch

from libs.result import Error, Return
from src.app.use_cases.billing.dtos import PaymentLinkResultDTO
from src.worker.payment_link_worker import PaymentLinkWorker
from tests.fixtures.clock import FixedClock


def link_result(invoice_id, skipped=False):
    return Return.ok(
        PaymentLinkResultDTO(
            invoice_id=invoice_id,
            invoice_number=f"INV-20240201-{invoice_id:05d}",
            payment_link_status="skipped" if skipped else "generated",
            attempts=1,
            skipped=skipped,
        )
    )


@pytest.fixture
def mock_session():
    session = MagicMock()
    session.__aenter__ = AsyncMock(return_value=session)
    session.__aexit__ = AsyncMock(return_value=False)
    return session


@pytest.fixture
def worker(mock_session):
    with patch("src.worker.payment_link_worker.create_async_engine") as mock_create_engine, patch(
        "src.worker.payment_link_worker.sessionmaker"
    ) as mock_sessionmaker:
        mock_create_engine.return_value = MagicMock(dispose=AsyncMock())
        mock_sessionmaker.return_value = MagicMock(return_value=mock_session)
        yield PaymentLinkWorker(
            gateway=MagicMock(),
            db_uri="sqlite+aiosqlite:///:memory:",
            clock=FixedClock(datetime(2024, 2, 1)),
            tenant_directory=MagicMock(),
            max_attempts=3,
            batch_size=50,
        )


@pytest.mark.asyncio
class TestPaymentLinkWorkerRunOnce:
    @patch("src.worker.payment_link_worker.GeneratePaymentLink")
    @patch("src.worker.payment_link_worker.SqlAlchemyInvoiceRepository")
    async def test_counts_outcomes(self, mock_repo_class, mock_use_case_class, worker):
        """
        Given: Four invoices needing a link
        When: run_once executes
        Then: Generated, skipped, failed and crashed invoices are counted separately
        """
        # Arrange
        mock_repo_class.return_value.list_needing_payment_link = AsyncMock(
            return_value=[MagicMock(id=1), MagicMock(id=2), MagicMock(id=3), MagicMock(id=4)]
        )
        mock_use_case_class.return_value.execute = AsyncMock(
            side_effect=[
                link_result(1),
                link_result(2, skipped=True),
                Return.err(Error(code="GATEWAY_ERROR", message="Payment gateway timed out")),
                RuntimeError("connection reset"),
            ]
        )

        # Act
        result = await worker.run_once()

        # Assert
        assert result.processed == 4
        assert result.generated == 1
        assert result.skipped == 1
        assert result.failed == 2
        mock_repo_class.return_value.list_needing_payment_link.assert_called_once_with(3, limit=50)

    @patch("src.worker.payment_link_worker.GeneratePaymentLink")
    @patch("src.worker.payment_link_worker.SqlAlchemyInvoiceRepository")
    async def test_nothing_to_do(self, mock_repo_class, mock_use_case_class, worker):
        # Arrange
        mock_repo_class.return_value.list_needing_payment_link = AsyncMock(return_value=[])

        # Act
        result = await worker.run_once()

        # Assert
        assert result.processed == 0
        mock_use_case_class.assert_not_called()

    async def test_shutdown_disposes_engine(self, worker):
        await worker.shutdown()

        worker.engine.dispose.assert_called_once()
