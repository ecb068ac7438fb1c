"""Tests de la apertura de peticiones: descifrado, frescura, contrato y token."""

import pytest

from gateway_api.auth.request_auth import RequestAuthenticator
from gateway_api.errors import (
    AuthenticationError,
    DecryptionError,
    ExpiredRequestError,
    InvalidRequestError,
)

from conftest import NOW_MS, seal_request


@pytest.fixture
def secret(settings) -> str:
    return settings.encryption_key


@pytest.fixture
def authenticator(cipher, tokens, secret, clock) -> RequestAuthenticator:
    return RequestAuthenticator(cipher, tokens, secret, max_age_ms=300_000, clock=clock)


# =============================================================================
# HAPPY PATH
# =============================================================================

class TestOpen:

    @pytest.mark.asyncio
    async def test_movie_request(self, authenticator, cipher, tokens, secret):
        envelope = seal_request(cipher, tokens, secret)

        payload = await authenticator.open(envelope.ciphertext, envelope.iv, envelope.auth_tag)

        assert payload.mediaType == "movie"
        assert payload.tmdbId == "550"

    @pytest.mark.asyncio
    async def test_tv_request(self, authenticator, cipher, tokens, secret):
        envelope = seal_request(
            cipher, tokens, secret, media_type="tv", tmdb_id="1399", season_id="1", episode_id="3"
        )

        payload = await authenticator.open(envelope.ciphertext, envelope.iv, envelope.auth_tag)

        assert (payload.seasonId, payload.episodeId) == ("1", "3")

    @pytest.mark.asyncio
    async def test_numeric_ids_keep_client_types(self, authenticator, cipher, tokens, secret):
        """El token se calcula con los tipos tal como llegaron del cliente."""
        envelope = seal_request(cipher, tokens, secret, tmdb_id=550)

        payload = await authenticator.open(envelope.ciphertext, envelope.iv, envelope.auth_tag)

        assert payload.tmdbId == 550


# =============================================================================
# REJECTIONS
# =============================================================================

class TestRejections:

    @pytest.mark.asyncio
    async def test_tampered_envelope(self, authenticator, cipher, tokens, secret):
        envelope = seal_request(cipher, tokens, secret)
        bad_tag = ("0" if envelope.auth_tag[0] != "0" else "1") + envelope.auth_tag[1:]

        with pytest.raises(DecryptionError):
            await authenticator.open(envelope.ciphertext, envelope.iv, bad_tag)

    @pytest.mark.asyncio
    async def test_expired_envelope(self, authenticator, cipher, tokens, secret, clock):
        """Sobre sellado hace 6 minutos: se rechaza antes de mirar el token."""
        envelope = seal_request(cipher, tokens, secret)
        clock.advance(6 * 60_000)

        with pytest.raises(ExpiredRequestError) as exc_info:
            await authenticator.open(envelope.ciphertext, envelope.iv, envelope.auth_tag)

        assert exc_info.value.age_ms == 6 * 60_000

    @pytest.mark.asyncio
    async def test_envelope_without_timestamp(self, authenticator, cipher, tokens, secret, clock):
        clock.now = None
        envelope = seal_request(cipher, tokens, secret)
        clock.now = NOW_MS

        with pytest.raises(ExpiredRequestError):
            await authenticator.open(envelope.ciphertext, envelope.iv, envelope.auth_tag)

    @pytest.mark.asyncio
    async def test_expired_token(self, authenticator, cipher, tokens, secret):
        """Sobre reciente pero timestamp del payload viejo."""
        envelope = seal_request(cipher, tokens, secret, timestamp=NOW_MS - 6 * 60_000)

        with pytest.raises(ExpiredRequestError):
            await authenticator.open(envelope.ciphertext, envelope.iv, envelope.auth_tag)

    @pytest.mark.asyncio
    async def test_bad_token(self, authenticator, cipher, tokens, secret):
        envelope = seal_request(cipher, tokens, secret, token="00" * 32)

        with pytest.raises(AuthenticationError) as exc_info:
            await authenticator.open(envelope.ciphertext, envelope.iv, envelope.auth_tag)

        assert not isinstance(exc_info.value, DecryptionError)

    @pytest.mark.asyncio
    async def test_token_for_other_media(self, authenticator, cipher, tokens, secret):
        other = seal_request(cipher, tokens, secret, tmdb_id="551")
        opened = cipher.decrypt(other.ciphertext, other.iv, other.auth_tag)
        envelope = seal_request(cipher, tokens, secret, token=opened["token"])

        with pytest.raises(AuthenticationError):
            await authenticator.open(envelope.ciphertext, envelope.iv, envelope.auth_tag)

    @pytest.mark.asyncio
    async def test_unknown_media_type(self, authenticator, cipher, tokens, secret):
        envelope = seal_request(cipher, tokens, secret, media_type="anime")

        with pytest.raises(InvalidRequestError):
            await authenticator.open(envelope.ciphertext, envelope.iv, envelope.auth_tag)

    @pytest.mark.asyncio
    async def test_tv_without_episode(self, authenticator, cipher, tokens, secret):
        envelope = seal_request(cipher, tokens, secret, media_type="tv", tmdb_id="1399", season_id="1")

        with pytest.raises(InvalidRequestError):
            await authenticator.open(envelope.ciphertext, envelope.iv, envelope.auth_tag)
