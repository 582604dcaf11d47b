"""Discovery of OpenShift/Kubernetes credentials through the oc CLI."""

import logging
import subprocess
import threading

logger = logging.getLogger(__name__)

# Executable called to discover cluster authentication information
OPENSHIFT_CLI_BINARY_NAME = "oc"

# Registry password that is replaced by the token from 'oc whoami -t'
OPENSHIFT_CLI_PASSWORD_KEYWORD = "oc"

# Flags of 'oc whoami'
TOKEN_FLAG = "-t"
USERNAME_FLAG = ""
CONTEXT_FLAG = "-c"
SERVER_FLAG = "--show-server=true"

DEFAULT_CLI_TIMEOUT = 30.0


class CredentialDiscoverer:
    """Best-effort access to the identity of the current oc login.

    Whether the CLI is installed is probed once and remembered for the
    lifetime of the instance, even if the binary shows up later. Identity
    fields are fetched on every call so that rotated tokens are picked up.
    No method raises: failures are logged and reported as unavailable/None.
    """

    def __init__(self, binary: str = OPENSHIFT_CLI_BINARY_NAME, timeout: float | None = DEFAULT_CLI_TIMEOUT):
        self.binary = binary
        self.timeout = timeout
        self._lock = threading.Lock()
        self._available: bool | None = None

    def has_capability(self) -> bool:
        """Check if the oc CLI is usable, probing it on first call."""
        if self._available is not None:
            return self._available

        with self._lock:
            # Another thread may have finished the probe while we waited
            if self._available is None:
                self._available = self._probe()
            return self._available

    def _probe(self) -> bool:
        cmd = [self.binary, "help"]
        logger.debug(f"Running OpenShift help command: {' '.join(cmd)}")
        try:
            result = subprocess.run(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            logger.info(f"OpenShift help command timed out after {self.timeout}s: {' '.join(cmd)}")
            return False
        except OSError as e:
            logger.info(f"Could not run OpenShift help command: {' '.join(cmd)}: {e}")
            return False

        logger.debug(f"OpenShift help command returned: {result.returncode}")
        return result.returncode == 0

    def retrieve_field(self, flag: str = USERNAME_FLAG) -> str | None:
        """Run 'oc whoami <flag>' and return the first line of its output.

        Both output streams are read until the process exits, so a chatty
        child can never block on a full pipe.

        Args:
            flag: One of TOKEN_FLAG, USERNAME_FLAG, CONTEXT_FLAG, SERVER_FLAG

        Returns:
            First line of stdout on exit code 0, None otherwise
        """
        cmd = [self.binary, "whoami"]
        if flag:
            cmd.append(flag)

        try:
            result = subprocess.run(
                cmd,
                stdin=subprocess.DEVNULL,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            logger.error(f"Kubernetes command timed out after {self.timeout}s: {' '.join(cmd)}")
            return None
        except OSError as e:
            logger.error(f"Error calling kubernetes command: {' '.join(cmd)}: {e}")
            return None

        if result.returncode != 0:
            detail = result.stderr.strip() or "(no output)"
            logger.error(f"Invalid response from kubernetes command '{' '.join(cmd)}': exit code {result.returncode}: {detail}")
            return None

        lines = result.stdout.splitlines()
        if not lines:
            return None
        return lines[0]

    def get_authentication_token(self) -> str | None:
        return self.retrieve_field(TOKEN_FLAG)

    def get_authentication_username(self) -> str | None:
        return self.retrieve_field(USERNAME_FLAG)

    def get_authentication_context(self) -> str | None:
        return self.retrieve_field(CONTEXT_FLAG)

    def get_authentication_server(self) -> str | None:
        return self.retrieve_field(SERVER_FLAG)


_default_discoverer = CredentialDiscoverer()


def get_discoverer() -> CredentialDiscoverer:
    """Get the process-wide discoverer, whose probe result is shared by all callers."""
    return _default_discoverer


def has_openshift() -> bool:
    """Check if the oc CLI is available (probed once per process)."""
    return _default_discoverer.has_capability()


def call_whoami(flag: str = USERNAME_FLAG) -> str | None:
    """Run 'oc whoami <flag>' with the process-wide discoverer."""
    return _default_discoverer.retrieve_field(flag)
