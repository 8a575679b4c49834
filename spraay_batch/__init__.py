"""
Spraay Batch — pay many recipients in one settlement transaction.

Validates a recipient list with exact fixed-point amounts, checks balance
and allowance, sequences the optional token approval before the batch
transfer, and tracks both transactions until they confirm.
"""

__version__ = "0.2.0"
__author__ = "Spraay"
__url__ = "https://spraay.app"
