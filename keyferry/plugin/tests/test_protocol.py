"""Tests for the plugin wire format."""

import base64
import json

import pytest
from pydantic import ValidationError

from keyferry.errors import FormatError, ParseError
from keyferry.keychain.types import Accessibility, BackendKind
from keyferry.plugin.protocol import (
    KEY_EXISTS,
    KEY_NOT_FOUND,
    ErrorDetail,
    KeychainConfig,
    Request,
    Response,
    decode_sys_specific,
    encode_sys_specific,
    key_exists,
    key_not_found,
    new_request,
    new_write_request,
)


class TestRequest:
    def test_wire_fields(self):
        config = KeychainConfig(keychain_type="file", account="alice")
        req = new_write_request("github", b"\x00secret", config)
        doc = json.loads(req.to_wire())
        assert doc["id"] == req.id
        assert doc["keyname"] == "github"
        assert doc["write"] is True
        assert base64.b64decode(doc["contents"]) == b"\x00secret"
        assert json.loads(base64.b64decode(doc["sys_specific"]))["format"] == "keychain"

    def test_read_request_omits_contents(self):
        doc = json.loads(new_request("github", KeychainConfig()).to_wire())
        assert "contents" not in doc
        assert doc["write"] is False

    def test_ids_positive(self):
        ids = {new_request("k", KeychainConfig()).id for _ in range(20)}
        assert all(i > 0 for i in ids)
        assert len(ids) > 1

    def test_decode(self):
        raw = json.dumps(
            {"id": 7, "keyname": "k", "write": True, "contents": base64.b64encode(b"v").decode()}
        )
        req = Request.model_validate_json(raw)
        assert req.id == 7
        assert req.contents == b"v"
        assert req.sys_specific == b""

    def test_invalid_base64(self):
        with pytest.raises(ValidationError):
            Request.model_validate_json('{"id": 1, "keyname": "k", "contents": "!!!"}')

    def test_missing_keyname(self):
        with pytest.raises(ValidationError):
            Request.model_validate_json('{"id": 1}')

    def test_new_response_echoes_id(self):
        req = Request(id=42, keyname="k")
        assert req.new_response(contents=b"x").id == 42
        assert req.new_response(error=key_not_found("k")).id == 42

    def test_repr_hides_contents(self):
        req = Request(id=1, keyname="k", contents=b"top-secret")
        assert "top-secret" not in repr(req)


class TestResponse:
    def test_sys_specific_never_on_wire(self):
        resp = Response(id=3, contents=b"x", sys_specific=b'{"format":"keychain"}')
        doc = json.loads(resp.to_wire())
        assert "sys_specific" not in doc
        assert doc == {"id": 3, "contents": base64.b64encode(b"x").decode()}

    def test_error_only(self):
        resp = Response(id=3, error=ErrorDetail(message="boom", detail="why"))
        assert json.loads(resp.to_wire()) == {
            "id": 3,
            "error": {"message": "boom", "detail": "why"},
        }

    def test_decode(self):
        resp = Response.model_validate_json('{"id": 9, "contents": "eA=="}')
        assert resp.contents == b"x"
        assert resp.error is None

    def test_error_constructors(self):
        assert key_not_found("k") == ErrorDetail(message=KEY_NOT_FOUND, detail="k")
        assert key_exists("k") == ErrorDetail(message=KEY_EXISTS, detail="k")


class TestSysSpecific:
    def test_roundtrip(self):
        config = KeychainConfig(
            keychain_type="data-protection",
            account="alice",
            update_in_place=True,
            accessibility="always",
            keychain_path="/tmp/k.keychain-db",
        )
        decoded = decode_sys_specific(encode_sys_specific(config))
        assert decoded == config
        assert decoded.keychain_type is BackendKind.DATA_PROTECTION
        assert decoded.accessibility is Accessibility.ALWAYS

    def test_defaults(self):
        config = decode_sys_specific(b'{"format": "keychain"}')
        assert config.keychain_type is BackendKind.ALL
        assert config.accessibility is Accessibility.WHEN_UNLOCKED
        assert config.update_in_place is False

    def test_unknown_format(self):
        with pytest.raises(FormatError):
            decode_sys_specific(b'{"format": "wincred"}')

    def test_missing_format(self):
        with pytest.raises(FormatError):
            decode_sys_specific(b'{"account": "alice"}')

    def test_unknown_field_rejected(self):
        with pytest.raises(ParseError):
            decode_sys_specific(b'{"format": "keychain", "acount": "typo"}')

    def test_bad_kind(self):
        with pytest.raises(ParseError, match="invalid keychain type"):
            decode_sys_specific(b'{"format": "keychain", "keychain_type": "cloud"}')

    def test_not_json(self):
        with pytest.raises(ParseError):
            decode_sys_specific(b"not json")

    def test_empty(self):
        with pytest.raises(ParseError):
            decode_sys_specific(b"")

    def test_not_an_object(self):
        with pytest.raises(ParseError):
            decode_sys_specific(b"[1, 2]")
