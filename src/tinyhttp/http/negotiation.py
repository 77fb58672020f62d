"""
=============================================================================
CONTENT NEGOTIATION
=============================================================================

Picks a content coding the client accepts and applies it to the body.

=============================================================================
CONTENT NEGOTIATION
=============================================================================

    Request:
    ┌───────────────────────────────────────────────────────────────┐
    │ GET /echo/abc HTTP/1.1                                        │
    │ Accept-Encoding: br, gzip;q=0.8, deflate                      │
    │                  │   │            └── DEFLATE (zlib wrapper)  │
    │                  │   └── gzip                                 │
    │                  └── Brotli (not supported here, skipped)     │
    └───────────────────────────────────────────────────────────────┘

    Response:
    ┌───────────────────────────────────────────────────────────────┐
    │ HTTP/1.1 200 OK                                               │
    │ Content-Type: text/plain                                      │
    │ Content-Encoding: gzip                                        │
    │ Vary: Accept-Encoding                                         │
    │ Content-Length: 23      (compressed size)                     │
    │                                                               │
    │ [gzip compressed body]                                        │
    └───────────────────────────────────────────────────────────────┘

We pick in OUR order of preference (SUPPORTED_ENCODINGS), not the client's,
and ignore q-values other than q=0, which means "never send me this".

=============================================================================
DETERMINISM
=============================================================================

A gzip member header carries a modification time. gzip.compress() fills it
with the current time unless told otherwise, so compressing "abc" twice a
second apart gives different bytes. We pass mtime=0: same input, same
Accept-Encoding, byte-identical output.

=============================================================================
"""

import gzip
import logging
import zlib
from dataclasses import replace
from typing import List, Optional, Set, Tuple

from .response import HTTPResponse


logger = logging.getLogger(__name__)

# Server preference order
SUPPORTED_ENCODINGS = ("gzip", "deflate")


def _parse(header: Optional[str]) -> Tuple[List[str], Set[str]]:
    """
    Split an Accept-Encoding value into (accepted, refused).

        "gzip, br;q=0.5, deflate;q=0" → (["gzip", "br"], {"deflate"})
    """
    accepted: List[str] = []
    refused: Set[str] = set()

    for item in (header or "").split(","):
        coding, *params = [part.strip() for part in item.split(";")]
        coding = coding.lower()
        if not coding:
            continue

        quality = 1.0
        for param in params:
            name, _, value = param.partition("=")
            if name.strip().lower() == "q":
                try:
                    quality = float(value)
                except ValueError:
                    quality = 1.0

        if quality <= 0:
            refused.add(coding)
        elif coding not in accepted:
            accepted.append(coding)

    return accepted, refused


def parse_accept_encoding(header: Optional[str]) -> List[str]:
    """
    Codings the client accepts, lowercased, parameters stripped.

    Codings marked q=0 are left out.
    """
    return _parse(header)[0]


def select_encoding(header: Optional[str]) -> Optional[str]:
    """
    The first of SUPPORTED_ENCODINGS the client accepts, or None.

    "*" accepts any coding not explicitly refused with q=0.
    """
    accepted, refused = _parse(header)
    wildcard = "*" in accepted

    for encoding in SUPPORTED_ENCODINGS:
        if encoding in refused:
            continue
        if encoding in accepted or wildcard:
            return encoding
    return None


def encode_body(body: bytes, encoding: str) -> bytes:
    """Apply a supported content coding to body."""
    if encoding == "gzip":
        return gzip.compress(body, mtime=0)
    if encoding == "deflate":
        return zlib.compress(body)
    raise ValueError(f"Unsupported content coding: {encoding}")


class ContentNegotiator:
    """
    Applies content coding to responses that allow it.

    A response is encoded only if ALL hold:
        - response.compressible is set by the handler
        - the body is non-empty
        - no Content-Encoding is set yet
        - the client accepts one of SUPPORTED_ENCODINGS
    """

    def negotiate(self, response: HTTPResponse, accept_encoding: Optional[str]) -> HTTPResponse:
        """
        Return the response to send.

        Never mutates response: an encoded response is a new object, and
        an unencoded one is the same object returned as-is.
        """
        if not response.compressible or not response.body:
            return response
        if response.get_header("Content-Encoding") is not None:
            return response

        encoding = select_encoding(accept_encoding)
        if encoding is None:
            return response

        body = encode_body(response.body, encoding)

        encoded = replace(response, headers=dict(response.headers), body=body)
        encoded.set_header("Content-Encoding", encoding)

        vary = encoded.get_header("Vary")
        if not vary:
            encoded.set_header("Vary", "Accept-Encoding")
        elif "accept-encoding" not in vary.lower():
            encoded.set_header("Vary", f"{vary}, Accept-Encoding")

        encoded.set_header("Content-Length", str(len(body)))

        logger.debug(f"Encoded body with {encoding}: {len(response.body)} -> {len(body)} bytes")
        return encoded
