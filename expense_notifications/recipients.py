import logging
from typing import Iterable, List, Optional

from .schemas import Expense

logger = logging.getLogger(__name__)

# Fields whose change warrants an "expense updated" notification
SIGNIFICANT_FIELDS = ("description", "amount", "paidBy", "splitBetween", "category")


def resolve_recipients(member_ids: Iterable[str], actor_id: Optional[str] = None) -> List[str]:
    """
    Determine who should hear about a mutation.

    Args:
        member_ids: Group member ids, in group order
        actor_id: User who performed the mutation, or None to notify every member

    Returns:
        Member ids with every occurrence of the actor removed, order preserved
    """
    if actor_id is None:
        return list(member_ids)
    return [member_id for member_id in member_ids if member_id != actor_id]


def has_significant_change(before: Expense, after: Expense) -> bool:
    """
    Check whether an edit touched any field members care about.

    `splitBetween` is compared as a set; everything else by equality.
    """
    for field in SIGNIFICANT_FIELDS:
        old_value = getattr(before, field)
        new_value = getattr(after, field)
        if field == "splitBetween":
            if set(old_value) != set(new_value):
                logger.debug(f"Significant change in {field}")
                return True
        elif old_value != new_value:
            logger.debug(f"Significant change in {field}")
            return True
    return False
