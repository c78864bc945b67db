from .core import set_reward, RewardOutcome  # noqa: F401
