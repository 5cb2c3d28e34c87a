import uuid

from app.utils.tokens import PUBLIC_TOKEN_PATTERN, generate_public_token, looks_like_record_id


def test_token_shape():
    token = generate_public_token()
    assert len(token) == 16
    assert PUBLIC_TOKEN_PATTERN.match(token)
    assert token == token.upper()
    assert "-" not in token


def test_tokens_do_not_repeat():
    tokens = {generate_public_token() for _ in range(2000)}
    assert len(tokens) == 2000


def test_record_ids_are_recognized_by_hyphen():
    assert looks_like_record_id(str(uuid.uuid4())) is True
    assert looks_like_record_id("abc-123-def") is True


def test_tokens_are_not_mistaken_for_record_ids():
    assert looks_like_record_id("ABCD1234EFGH5678") is False
    assert looks_like_record_id(generate_public_token()) is False
