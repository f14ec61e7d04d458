from typing import Dict, Optional

from swaptrack.ingestion.models import Platform
from swaptrack.ingestion.normalizers import NORMALIZERS, NormalizerSpec


class NormalizerRegistry:
    def __init__(self, specs: Optional[Dict[Platform, NormalizerSpec]] = None):
        self._normalizers: Dict[Platform, NormalizerSpec] = dict(NORMALIZERS if specs is None else specs)

    def register(self, spec: NormalizerSpec):
        """Register (or replace) the normalizer for a platform."""
        self._normalizers[spec.platform] = spec

    def get(self, platform: Platform) -> NormalizerSpec:
        spec = self._normalizers.get(platform)
        if not spec:
            raise ValueError(f"No normalizer registered for platform: {platform}")
        return spec

    def __contains__(self, platform: Platform) -> bool:
        return platform in self._normalizers
