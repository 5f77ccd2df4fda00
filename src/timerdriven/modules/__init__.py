from .base import TimerDrivenModule, TimerDrivenModuleContext

__all__ = ["TimerDrivenModule", "TimerDrivenModuleContext"]
