import shlex
import urllib.parse

import requests

# Form fields and query parameters never written out in clear.
SECRET_FIELDS = ( 'client_secret', 'code', 'refresh_token', 'access_token' )

REDACTED = '<redacted>'


def _redactQuery( query ):
    pairs = urllib.parse.parse_qsl( query, keep_blank_values = True )
    return urllib.parse.urlencode( [ ( k, REDACTED if k in SECRET_FIELDS else v ) for k, v in pairs ] )


def getCurlCommandString(request: requests.PreparedRequest):
    """
    Build cURL command string for a specific request to aid with debugging.

    Secrets in the form body or the query string are redacted.

    Args:
        request: The prepared request to build the cURL command from.
    """
    parts = ["curl"]

    parts.extend(["-X", shlex.quote(request.method or "GET")])

    for header, value in request.headers.items():
        if header.lower() == "authorization":
            value = REDACTED
        parts.extend(["-H", shlex.quote(f"{header}: {value}")])

    # If there's a data payload, add it.
    if request.body:
        body = request.body
        if isinstance(body, bytes):
            body = body.decode("utf-8", errors="replace")
        parts.extend(["-d", shlex.quote(_redactQuery(body))])

    url = urllib.parse.urlsplit(request.url)
    if url.query:
        url = url._replace(query=_redactQuery(url.query))
    parts.append(shlex.quote(urllib.parse.urlunsplit(url)))

    # Join the parts into a single string command.
    return " ".join(parts)
