from .profiles import (
    AttackEventRecord,
    AttemptRecord,
    BruteForceProfile,
    CoordinatedAttackCluster,
    CredentialAttempt,
    CredentialStuffingProfile,
    IPCrossSessionProfile,
    LockoutState,
    SessionProfile,
)
from .store import CredentialPairIndex, EngineState, KeyedStore

__all__ = [
    "AttackEventRecord",
    "AttemptRecord",
    "BruteForceProfile",
    "CoordinatedAttackCluster",
    "CredentialAttempt",
    "CredentialPairIndex",
    "CredentialStuffingProfile",
    "EngineState",
    "IPCrossSessionProfile",
    "KeyedStore",
    "LockoutState",
    "SessionProfile",
]
