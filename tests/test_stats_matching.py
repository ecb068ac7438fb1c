"""Tests de la reconciliación de nombres de servidor."""

import pytest

from gateway_api.stats.matching import NameIndex, normalize_server_name
from gateway_api.stats.models import ServerStat

from conftest import NOW_MS


def _stat(name: str, alias: str, grouped: bool = False) -> ServerStat:
    return ServerStat.fresh(name, alias, NOW_MS, grouped=grouped)


class TestNormalize:

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("VidSrc", "vidsrc"),
            ("vidsrc2", "vidsrc"),
            ("embed-v2", "embed"),
            ("embed_v3", "embed"),
            ("rgaio_Hydra", "hydra"),
            ("  Padded  ", "padded"),
            ("", ""),
        ],
    )
    def test_normalize(self, raw, expected):
        assert normalize_server_name(raw) == expected


class TestNameIndex:

    @pytest.fixture
    def index(self):
        return NameIndex(
            [
                _stat("vidsrc", "Alpha"),
                _stat("embedsu", "Bravo"),
                _stat("rgaio_hydra", "Charlie", grouped=True),
            ]
        )

    def test_canonical_case_insensitive(self, index):
        assert index.resolve("VIDSRC").alias_name == "Alpha"

    def test_normalized(self, index):
        assert index.resolve("vidsrc2").alias_name == "Alpha"

    def test_alias(self, index):
        assert index.resolve("bravo").original_name == "embedsu"

    def test_grouped_prefix(self, index):
        assert index.resolve("RGAIO_Hydra").alias_name == "Charlie"

    def test_substring(self, index):
        assert index.resolve("embedsu-mirror").alias_name == "Bravo"

    def test_unknown(self, index):
        assert index.resolve("totally-new") is None
        assert index.resolve("") is None

    def test_canonical_beats_alias(self):
        """Una fuente llamada como el alias de otra gana por nombre canónico."""
        index = NameIndex([_stat("alpha", "Bravo"), _stat("other", "Alpha")])

        assert index.resolve("Alpha").original_name == "alpha"

    def test_ambiguous_prefers_grouping_match(self, caplog):
        index = NameIndex([_stat("hydra", "Alpha"), _stat("rgaio_hydra", "Bravo", grouped=True)])

        assert index.resolve("rgaio_hydra2").alias_name == "Bravo"
        assert index.resolve("hydra2").alias_name == "Alpha"
        assert "ambigua" in caplog.text

    def test_ambiguous_substring_prefers_longest(self):
        index = NameIndex([_stat("stream", "Alpha"), _stat("streamtape", "Bravo")])

        assert index.resolve("streamtapeplus").alias_name == "Bravo"
