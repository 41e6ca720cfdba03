"""JSON-RPC client for a bitcoind-style chain node.

Only the read-only block and transaction calls the sync engine needs are
exposed. Numbers with a fractional part are decoded as Decimal so node
amounts never pass through float.
"""
import itertools
import logging
import threading
from decimal import Decimal
from typing import Any, Dict, Optional

import backoff
import requests

logger = logging.getLogger(__name__)

class RPCError(Exception):
    """Base exception for RPC errors"""
    def __init__(self, message: str, code: Optional[int] = None, method: Optional[str] = None):
        self.code = code
        self.method = method
        super().__init__(f"{method} failed [{code}]: {message}" if code is not None else message)

class NodeConnectionError(RPCError):
    """The node could not be reached or answered with something other than JSON-RPC"""
    pass

class NodeAuthError(RPCError):
    """The node rejected rpcuser/rpcpassword"""
    pass

class NodeError(RPCError):
    """The node answered with a JSON-RPC error object

    Codes the sync engine cares about:
    -5  - No such block or transaction
    -8  - Block height out of range
    -28 - Node is still loading its block index
    """
    NOT_FOUND_CODES = (-5, -8)

    def __init__(self, message: str, code: int, method: str):
        super().__init__(message, code, method)

    @property
    def is_not_found(self) -> bool:
        return self.code in self.NOT_FOUND_CODES

class RPCMethod:
    """Descriptor turning a class attribute into a bound RPC call"""
    def __init__(self, method_name: str):
        self.method_name = method_name

    def __get__(self, obj, objtype=None):
        if obj is None:
            return self

        def caller(*args) -> Any:
            return obj._call_method(self.method_name, *args)

        caller.__name__ = self.method_name
        return caller

class NodeRPC:
    """Blocking JSON-RPC client.

    Calls are made from worker threads (asyncio.to_thread). A worker whose
    caller timed out keeps running in the background, so each thread gets its
    own requests session and never shares a connection with a later call.
    """

    def __init__(
        self,
        rpc_user: str,
        rpc_password: str,
        rpc_port: int,
        rpc_host: str = '127.0.0.1',
        timeout: float = 30.0,
        max_tries: int = 3
    ):
        """Initialize RPC client.

        Args:
            rpc_user: RPC authentication username
            rpc_password: RPC authentication password
            rpc_port: Port the node serves RPC on
            rpc_host: Host the node serves RPC on
            timeout: Seconds before an HTTP request is abandoned
            max_tries: Attempts per call while the node is unreachable
        """
        self.url = f"http://{rpc_host}:{rpc_port}"
        self.timeout = timeout
        self.max_tries = max_tries

        self._auth = (rpc_user, rpc_password)
        self._local = threading.local()
        self._ids = itertools.count(1)

    @property
    def session(self) -> requests.Session:
        """The calling thread's session, created on first use"""
        session = getattr(self._local, 'session', None)
        if session is None:
            session = requests.Session()
            session.auth = self._auth
            session.headers['content-type'] = 'application/json'
            self._local.session = session
        return session

    @classmethod
    def from_config(cls, node_conf: Dict[str, Any], timeout: float = 30.0) -> 'NodeRPC':
        """Build a client from a parsed node configuration file"""
        return cls(
            rpc_user=node_conf['rpcuser'],
            rpc_password=node_conf['rpcpassword'],
            rpc_port=node_conf['rpcport'],
            rpc_host=node_conf.get('rpcbind', '127.0.0.1'),
            timeout=timeout
        )

    def _call_method(self, method: str, *args) -> Any:
        """Call method, retrying with exponential backoff while the node is unreachable"""
        send = backoff.on_exception(
            backoff.expo,
            NodeConnectionError,
            max_tries=self.max_tries,
            max_time=self.timeout * self.max_tries,
            logger=logger
        )(self._post)
        return send(method, *args)

    def _post(self, method: str, *args) -> Any:
        """Send one request and unwrap its result

        Raises:
            NodeConnectionError: Transport failure or a non JSON-RPC response
            NodeAuthError: HTTP 401
            NodeError: The response carried an error object
        """
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": list(args)
        }

        try:
            response = self.session.post(self.url, json=payload, timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            raise NodeConnectionError(f"{method} timed out after {self.timeout} seconds") from e
        except requests.exceptions.RequestException as e:
            raise NodeConnectionError(f"{method}: cannot reach node at {self.url}: {e}") from e

        if response.status_code == 401:
            raise NodeAuthError("Authentication failed - check rpcuser/rpcpassword", method=method)

        # bitcoind reports RPC errors with HTTP 404/500 and a JSON body, so parse first
        try:
            body = response.json(parse_float=Decimal)
        except ValueError as e:
            raise NodeConnectionError(
                f"{method}: non-JSON response (HTTP {response.status_code})"
            ) from e

        error = body.get('error') if isinstance(body, dict) else None
        if error:
            raise NodeError(error.get('message', 'Unknown error'), error.get('code', -1), method)

        try:
            response.raise_for_status()
            return body['result']
        except (requests.exceptions.HTTPError, KeyError, TypeError) as e:
            raise NodeConnectionError(f"{method}: invalid response: {e}") from e

    # Chain state
    getblockchaininfo = RPCMethod('getblockchaininfo')
    getblockcount = RPCMethod('getblockcount')
    getbestblockhash = RPCMethod('getbestblockhash')

    # Blocks and transactions
    getblockhash = RPCMethod('getblockhash')
    getblock = RPCMethod('getblock')
    getrawtransaction = RPCMethod('getrawtransaction')

_client: Optional[NodeRPC] = None

def get_client() -> NodeRPC:
    """Return the shared client, building it from configuration on first use."""
    global _client

    if _client is None:
        # Imported here so importing rpc never reads configuration files
        from config import get_settings, get_node_conf

        _client = NodeRPC.from_config(get_node_conf(), timeout=get_settings()['rpc_timeout'])
    return _client

__all__ = [
    'RPCError',
    'NodeConnectionError',
    'NodeAuthError',
    'NodeError',
    'NodeRPC',
    'get_client'
]
