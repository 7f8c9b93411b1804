"""Models package."""

from .account import Account
from .transaction import Transaction
from .generation import GenerationRecord
