import jwt

ALGORITHM = "HS256"


def encode_session_record(record, signing_key):
    """Sign a client-held session record.

    The result is signed, not encrypted: anyone holding it can read the fields,
    but a modified record will fail ``decode_session_record``.
    """
    if not record:
        raise ValueError("Session record must be provided to encode it")
    return jwt.encode(dict(record), signing_key, algorithm=ALGORITHM)


def decode_session_record(token, signing_key):
    """Return the record dict, or None when the signature or payload is bad."""
    try:
        return jwt.decode(token, signing_key, algorithms=[ALGORITHM])
    except jwt.InvalidTokenError:
        return None
