# kubesignal/enhancers/__init__.py
"""Context enhancers applied to alerts before they are forwarded."""
from .cronjob import enhance_cronjob, enhance_owner_fallback
from .pipeline import EnhancerContext, EnhancerPipeline
from .pod import enhance_pod

__all__ = [
    "EnhancerContext", "EnhancerPipeline",
    "enhance_cronjob", "enhance_owner_fallback", "enhance_pod",
]
