"""Provider gateway and parallel inference."""
from .dto import CallOptions, ProviderCallResult, ProviderConfig
from .gateway import ProviderGateway, build_provider_meta, extract_json_object
from .parallel import ParallelInferenceCoordinator

__all__ = [
    "CallOptions",
    "ProviderCallResult",
    "ProviderConfig",
    "ProviderGateway",
    "ParallelInferenceCoordinator",
    "build_provider_meta",
    "extract_json_object",
]
