"""
Transaction log repository using SQLAlchemy ORM
"""

from datetime import datetime, timezone
from typing import List, Optional
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from airdrop_portal.core.service.claim.models import Transaction
from airdrop_portal.infra.models import TransactionModel, TransactionStatus
from airdrop_portal.core.logger.logger import get_logger

logger = get_logger(__name__)


class TransactionRepository:
    """Repository for on-chain transfer records"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _model_to_entity(self, model: TransactionModel) -> Transaction:
        return Transaction(
            id=model.id,
            wallet_address=model.wallet_address,
            tx_hash=model.tx_hash,
            amount=model.amount,
            status=model.status,
            gas_used=model.gas_used,
            gas_paid=model.gas_paid,
            block_number=model.block_number,
            error=model.error,
            retry_count=model.retry_count,
            created_at=model.created_at,
            updated_at=model.updated_at
        )

    async def create(
        self,
        wallet_address: str,
        tx_hash: str,
        amount: str,
        status: str = TransactionStatus.PENDING
    ) -> Transaction:
        """
        Record a submitted transfer

        Args:
            wallet_address: Recipient wallet
            tx_hash: Transaction hash returned by the node
            amount: Amount in base units (as string)
            status: Initial status, pending unless already known

        Returns:
            The stored Transaction
        """
        model = TransactionModel(
            wallet_address=wallet_address.lower(),
            tx_hash=tx_hash,
            amount=amount,
            status=status
        )
        try:
            self.session.add(model)
            await self.session.commit()
            await self.session.refresh(model)
        except Exception as e:
            await self.session.rollback()
            logger.error(
                "Failed to record transaction",
                extra={"tx_hash": tx_hash, "wallet_address": wallet_address, "error": str(e)}
            )
            raise

        logger.info(
            "Transaction recorded",
            extra={"tx_hash": tx_hash, "wallet_address": wallet_address, "status": status}
        )
        return self._model_to_entity(model)

    async def _update(self, tx_hash: str, **values) -> None:
        values["updated_at"] = datetime.now(timezone.utc)
        stmt = (
            update(TransactionModel)
            .where(TransactionModel.tx_hash == tx_hash)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        try:
            await self.session.execute(stmt)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

    async def mark_as_confirmed(self, tx_hash: str, block_number: int, gas_used: str, gas_paid: str = "0") -> None:
        await self._update(
            tx_hash,
            status=TransactionStatus.CONFIRMED,
            block_number=block_number,
            gas_used=gas_used,
            gas_paid=gas_paid
        )
        logger.info("Transaction confirmed", extra={"tx_hash": tx_hash, "block_number": block_number})

    async def mark_as_failed(self, tx_hash: str, error: str) -> None:
        await self._update(tx_hash, status=TransactionStatus.FAILED, error=error)
        logger.warning("Transaction failed", extra={"tx_hash": tx_hash, "error": error})

    async def find_by_tx_hash(self, tx_hash: str) -> Optional[Transaction]:
        stmt = select(TransactionModel).where(TransactionModel.tx_hash == tx_hash)
        result = await self.session.execute(stmt.execution_options(populate_existing=True))
        model = result.scalar_one_or_none()
        return self._model_to_entity(model) if model else None

    async def find_by_address(self, address: str) -> List[Transaction]:
        """All transfers to a wallet, newest first"""
        stmt = (
            select(TransactionModel)
            .where(TransactionModel.wallet_address == address.lower())
            .order_by(TransactionModel.created_at.desc(), TransactionModel.id.desc())
        )
        result = await self.session.execute(stmt.execution_options(populate_existing=True))
        return [self._model_to_entity(model) for model in result.scalars().all()]

    async def recent(self, limit: int = 20, status: Optional[str] = None) -> List[Transaction]:
        stmt = select(TransactionModel).order_by(TransactionModel.created_at.desc(), TransactionModel.id.desc())
        if status:
            stmt = stmt.where(TransactionModel.status == status)
        result = await self.session.execute(stmt.limit(limit).execution_options(populate_existing=True))
        return [self._model_to_entity(model) for model in result.scalars().all()]
