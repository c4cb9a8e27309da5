"""Tests for ID-token account derivation."""

from __future__ import annotations

import uuid

import pytest

from conftest import encode_id_token
from devgrid_auth.accounts import DEFAULT_ACCOUNT_LABEL, build_account_info, decode_id_token


class TestDecodeIdToken:
    def test_reads_payload(self) -> None:
        token = encode_id_token({"sub": "user-1", "name": "Ada"})
        assert decode_id_token(token) == {"sub": "user-1", "name": "Ada"}

    @pytest.mark.parametrize("token", [None, "", "opaque", "a.!!!.c", "a.bm90IGpzb24.c"])
    def test_unreadable_tokens(self, token: object) -> None:
        assert decode_id_token(token) is None  # type: ignore[arg-type]

    def test_non_object_payload(self) -> None:
        token = encode_id_token({"sub": "x"}).split(".")
        token[1] = "WzEsMl0"  # [1,2]
        assert decode_id_token(".".join(token)) is None


class TestBuildAccountInfo:
    def test_prefers_sub_and_name(self) -> None:
        account = build_account_info(
            encode_id_token({"sub": "auth0|1", "email": "a@example.com", "name": "Ada"})
        )
        assert account.id == "auth0|1"
        assert account.label == "Ada"

    def test_falls_back_to_email(self) -> None:
        account = build_account_info(encode_id_token({"email": "a@example.com"}))
        assert account.id == "a@example.com"
        assert account.label == "a@example.com"

    def test_preferred_username_and_nickname(self) -> None:
        account = build_account_info(
            encode_id_token({"preferred_username": "ada", "nickname": "A"})
        )
        assert account.id == "ada"
        assert account.label == "A"

    def test_no_id_token_gets_random_id_and_default_label(self) -> None:
        first = build_account_info(None)
        second = build_account_info("garbage")
        assert first.label == DEFAULT_ACCOUNT_LABEL
        assert uuid.UUID(first.id)
        assert first.id != second.id
