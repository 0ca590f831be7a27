"""Account balance and credit-card limit mutations.

Every call here is a plain read-modify-write that commits on its own. There is
no compare-and-swap and no lock, so two sessions adjusting the same row can
lose an update; ``AccountService.reconcile_balance`` is the repair path.
"""

import logging
from enum import Enum
from typing import Optional

from sqlalchemy.orm import Session

from models import Account, AccountType, CreditCardDetail

logger = logging.getLogger(__name__)


class BalanceDirection(str, Enum):
    credit = "credit"
    debit = "debit"


def signed_amount(amount_cents: int, direction: BalanceDirection) -> int:
    if direction == BalanceDirection.credit:
        return amount_cents
    if direction == BalanceDirection.debit:
        return -amount_cents
    raise ValueError(f"Unsupported balance direction: {direction!r}")


class BalanceMutator:
    def __init__(self, session: Session) -> None:
        self.session = session

    def adjust(
        self, account_id: int, amount_cents: int, direction: BalanceDirection
    ) -> Optional[Account]:
        """Apply ``amount_cents`` to the account balance in ``direction``.

        A missing account is a no-op and returns ``None``; the caller's
        transaction is never blocked by it.
        """
        delta = signed_amount(amount_cents, direction)
        account = self.session.get(Account, account_id, populate_existing=True)
        if account is None:
            logger.warning(
                f"balance_adjust_skipped: account_id={account_id} reason=not_found"
            )
            return None

        before = account.balance_cents
        account.balance_cents = before + delta
        self.session.commit()
        logger.debug(
            f"balance_adjust: account_id={account_id} direction={direction.value} "
            f"before={before} after={account.balance_cents}"
        )
        return account


class CreditLimitMutator:
    """Two-sided effect of paying a credit-card invoice from another account.

    Forward restores the card's available limit capped at the total limit.
    Reverse takes back the full payment floored at zero. A capped forward step
    therefore does not round-trip: with total 5000 and available 3000, paying
    3000 caps available at 5000 and reversing it leaves 2000.
    """

    def __init__(
        self, session: Session, balances: Optional[BalanceMutator] = None
    ) -> None:
        self.session = session
        self.balances = balances or BalanceMutator(session)

    def apply_payment(
        self, funding_account_id: int, card_account_id: int, amount_cents: int
    ) -> Optional[CreditCardDetail]:
        self.balances.adjust(funding_account_id, amount_cents, BalanceDirection.debit)
        return self._shift_available(card_account_id, amount_cents)

    def reverse_payment(
        self, funding_account_id: int, card_account_id: int, amount_cents: int
    ) -> Optional[CreditCardDetail]:
        self.balances.adjust(funding_account_id, amount_cents, BalanceDirection.credit)
        return self._shift_available(card_account_id, -amount_cents)

    def _card_detail(self, card_account_id: int) -> Optional[CreditCardDetail]:
        account = self.session.get(Account, card_account_id)
        if account is None:
            return None
        if account.type == AccountType.credit_card:
            return self.session.get(
                CreditCardDetail, card_account_id, populate_existing=True
            )
        if account.type in (AccountType.checking, AccountType.cash):
            return None
        raise ValueError(f"Unsupported account type: {account.type!r}")

    def _shift_available(
        self, card_account_id: int, delta_cents: int
    ) -> Optional[CreditCardDetail]:
        card = self._card_detail(card_account_id)
        if card is None:
            logger.warning(
                f"card_limit_skipped: card_account_id={card_account_id} "
                "reason=no_credit_card_detail"
            )
            return None

        before = card.limit_available_cents
        if delta_cents >= 0:
            card.limit_available_cents = min(before + delta_cents, card.limit_total_cents)
        else:
            card.limit_available_cents = max(before + delta_cents, 0)
        self.session.commit()
        logger.debug(
            f"card_limit_shift: card_account_id={card_account_id} delta={delta_cents} "
            f"before={before} after={card.limit_available_cents}"
        )
        return card
