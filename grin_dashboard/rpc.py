"""
JSON-RPC client for the Grin node API and the external price feed
"""

import json
import logging

import requests

logger = logging.getLogger(__name__)

HEADERS = {'content-type': 'application/json'}


class RpcError(Exception):
    pass


class NodeError(RpcError):
    """The node answered with an 'Err' result, e.g. NotFound."""

    def __init__(self, method, err):
        super().__init__(f"{method}: {err}")
        self.err = err


def envelope(method, params=None, id=1):
    """Build a JSON-RPC 2.0 request body."""
    if params is None:
        params = []
    return {
        "jsonrpc": "2.0",
        "id": id,
        "method": method,
        "params": params
    }


def unwrap(method, body):
    """Return the 'Ok' value of a node response, raising RpcError otherwise."""
    if not isinstance(body, dict):
        raise RpcError(f"{method}: unexpected response {body!r}")
    if body.get('error'):
        raise RpcError(f"{method}: {body['error']}")
    result = body.get('result')
    if isinstance(result, dict):
        if 'Ok' in result:
            return result['Ok']
        if 'Err' in result:
            raise NodeError(method, result['Err'])
    raise RpcError(f"{method}: no result in response")


class NodeRpc:
    """Calls against the configured node plus unauthenticated external nodes."""

    def __init__(self, config, session=None):
        self.config = config
        self.session = session or requests.Session()

    def call(self, method, params=None, id=1, scope='foreign'):
        """Make an authenticated RPC call to the node; returns the decoded body."""
        url = self.config.rpc_url(scope)
        auth = (self.config.user, self.config.secret_for(scope))
        return self._post(url, envelope(method, params, id), auth=auth)

    def call_external(self, method, params=None, id=1, scope='owner', endpoint=''):
        """Same call as above against an arbitrary endpoint, without secrets."""
        url = f"{endpoint.rstrip('/')}/v2/{scope}"
        return self._post(url, envelope(method, params, id))

    def result(self, method, params=None, scope='foreign'):
        """Make a node call and return its 'Ok' payload."""
        return unwrap(method, self.call(method, params, scope=scope))

    def _post(self, url, payload, auth=None):
        method = payload['method']
        try:
            response = self.session.post(
                url,
                auth=auth,
                data=json.dumps(payload),
                headers=HEADERS,
                timeout=self.config.rpc_timeout
            )
        except requests.RequestException as e:
            raise RpcError(f"{method} ({url}): {e}") from e

        if response.status_code != 200:
            # The node may still embed a JSON-RPC error in the body
            logger.error("rpc failed, status code: %s (%s)", response.status_code, method)

        try:
            return response.json()
        except ValueError as e:
            raise RpcError(f"{method} ({url}): invalid JSON body") from e


class PriceFeed:
    """Simple price/volume endpoint keyed by coin id."""

    def __init__(self, url, session=None, timeout=10):
        self.url = url
        self.session = session or requests.Session()
        self.timeout = timeout

    def fetch(self):
        try:
            response = self.session.get(self.url, timeout=self.timeout)
        except requests.RequestException as e:
            raise RpcError(f"price feed: {e}") from e
        try:
            return response.json()
        except ValueError as e:
            raise RpcError("price feed: invalid JSON body") from e
