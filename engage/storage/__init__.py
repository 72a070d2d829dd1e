from ._schema import SCHEMA_VERSION, SCHEMA_SQL
from .audit import AuditRepo
from .campaigns import CampaignRepo
from .claim_counters import ClaimCounterRepo
from .config_repo import LimitConfigRepo
from .consolations import ConsolationRepo
from .enforcement import EnforcementLogRepo
from .questions import QuestionRepo
from .quiz_attempts import QuizAttemptRepo
from .rate_limits import RateLimitRepo
from .rotation import RotationRepo
from .sessions import SessionRepo
from .wallet_txns import WalletTxnRepo
from .wallets import WalletRepo
from .manager import StorageManager

__all__ = [
    "SCHEMA_VERSION",
    "SCHEMA_SQL",
    "AuditRepo",
    "CampaignRepo",
    "ClaimCounterRepo",
    "LimitConfigRepo",
    "ConsolationRepo",
    "EnforcementLogRepo",
    "QuestionRepo",
    "QuizAttemptRepo",
    "RateLimitRepo",
    "RotationRepo",
    "SessionRepo",
    "WalletTxnRepo",
    "WalletRepo",
    "StorageManager",
]
