"""Wire-level code tables shared by the builder, signers and client."""

from enum import IntEnum


class TxType(IntEnum):
    """Transaction type codes accepted by ``sendTx``."""
    CHANGE_PUB_KEY = 8
    CREATE_SUB_ACCOUNT = 9
    CREATE_PUBLIC_POOL = 10
    UPDATE_PUBLIC_POOL = 11
    TRANSFER = 12
    WITHDRAW = 13
    CREATE_ORDER = 14
    CANCEL_ORDER = 15
    CANCEL_ALL_ORDERS = 16
    MODIFY_ORDER = 17
    MINT_SHARES = 18
    BURN_SHARES = 19
    UPDATE_LEVERAGE = 20


class OrderType(IntEnum):
    LIMIT = 0
    MARKET = 1
    STOP_LOSS = 2
    STOP_LOSS_LIMIT = 3
    TAKE_PROFIT = 4
    TAKE_PROFIT_LIMIT = 5
    TWAP = 6


class TimeInForce(IntEnum):
    """Order time-in-force for create/modify order transactions.

    Value 2 is sent as POST_ONLY. The venue's code table also lists 2 as
    fill-or-kill; that name is FILL_OR_KILL_CODE and is not a member here.
    """
    IMMEDIATE_OR_CANCEL = 0
    GOOD_TILL_TIME = 1
    POST_ONLY = 2


class CancelAllTimeInForce(IntEnum):
    IMMEDIATE = 0
    SCHEDULED = 1
    ABORT = 2


class MarginMode(IntEnum):
    CROSS = 0
    ISOLATED = 1


# Fill-or-kill in the venue's order code table; same wire value as POST_ONLY
FILL_OR_KILL_CODE = 2

NIL_TRIGGER_PRICE = 0
DEFAULT_28_DAY_ORDER_EXPIRY = -1
DEFAULT_IOC_EXPIRY = 0
DEFAULT_10_MIN_AUTH_EXPIRY = -1
MINUTE = 60
DEFAULT_AUTH_TOKEN_TTL = 10 * MINUTE

USDC_TICKER_SCALE = 1_000_000
TRANSFER_MEMO_LENGTH = 32
DEFAULT_TRANSFER_MEMO = "a" * TRANSFER_MEMO_LENGTH

MAX_BATCH_SIZE = 50

MAINNET_CHAIN_ID = 304
TESTNET_CHAIN_ID = 300
