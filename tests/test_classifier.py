import pytest

from swaptrack.core.constants import TOKEN_PROGRAM_ID
from swaptrack.core.errors import ClassificationMiss
from swaptrack.ingestion.classifier import PLATFORM_REGISTRY, PROGRAM_IDS, classify, classify_or_raise
from swaptrack.ingestion.models import Platform
from swaptrack.ingestion.normalizers import NORMALIZERS
from swaptrack.ingestion.registry import NormalizerRegistry


@pytest.mark.parametrize("platform", list(Platform))
def test_every_platform_classifies_from_its_program_id(platform):
    keys = ["FeePayer1111", PROGRAM_IDS[platform], TOKEN_PROGRAM_ID]
    assert classify(keys) == platform


def test_raydium_amm_scenario():
    keys = ["AAA", "675kPX9MHTjS2zt1qfr1NYHuzeLXfQM9H24wFSUt1Mp8", "BBB"]
    assert classify(keys) == Platform.RAYDIUM_AMM


def test_no_supported_program_is_filtered_out():
    assert classify(["AAA", TOKEN_PROGRAM_ID, "BBB"]) is None
    assert classify([]) is None
    with pytest.raises(ClassificationMiss):
        classify_or_raise(["AAA"])


def test_first_registered_platform_wins():
    keys = [PROGRAM_IDS[Platform.PUMP_AMM], PROGRAM_IDS[Platform.RAYDIUM_CLMM]]
    assert classify(keys) == Platform.RAYDIUM_CLMM


def test_every_registered_platform_has_a_normalizer():
    registry = NormalizerRegistry()
    for platform, program_id in PLATFORM_REGISTRY:
        assert platform in registry
        assert registry.get(platform).program_id == program_id
    assert set(NORMALIZERS) == set(Platform)


def test_registry_rejects_unknown_platform():
    registry = NormalizerRegistry(specs={})
    with pytest.raises(ValueError):
        registry.get(Platform.ORCA)
