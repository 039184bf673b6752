"""Renders the shell scripts executed on the client and the server.

Every value that comes from the command line or from a remote host is bound
to a shell variable at the top of the script through ``shlex.quote``. The
script bodies below are fixed text and only ever reference those variables.
"""

import shlex
from typing import List, Optional, Tuple

from .config import Config
from .models import ClientPublicKey, GeneratedScript, Role, ServerHostKey, validate_user


# Drops every known_hosts entry whose host field lists one of ``names``.
KNOWN_HOSTS_FILTER = """\
BEGIN { count = split(names, wanted, " ") }
{
    listed = split($1, hosts, ",")
    for (i = 1; i <= listed; i++)
        for (j = 1; j <= count; j++)
            if (hosts[i] == wanted[j])
                next
    print
}
"""

# Drops authorized_keys entries carrying ``blob`` or whose comment is ``token``.
AUTHORIZED_KEYS_FILTER = """\
{
    for (i = 1; i <= NF; i++)
        if ($i == blob)
            next
}
NF > 0 && $NF == token { next }
{ print }
"""

_PREAMBLE = """\
#!/bin/sh
# Generated by sshtrust ({role} side). Removes itself when done.
set -eu
"""

_ACCOUNT = """
trap 'rm -f -- "$0"' EXIT

if ! id "$TARGET_USER" >/dev/null 2>&1; then
    useradd -m "$TARGET_USER"
fi

TARGET_GROUP=$(id -gn "$TARGET_USER")
HOME_DIR=$(getent passwd "$TARGET_USER" | cut -d: -f6)
SSH_DIR="$HOME_DIR/.ssh"

mkdir -p "$SSH_DIR"
"""

_CLIENT_BODY = """
KNOWN_HOSTS="$SSH_DIR/known_hosts"

if [ ! -f "$SSH_DIR/id_rsa.pub" ]; then
    if [ -f "$SSH_DIR/id_rsa" ]; then
        ssh-keygen -y -f "$SSH_DIR/id_rsa" | awk -v c="$TARGET_USER@$SELF_ADDRESS" '{ print $1, $2, c }' > "$SSH_DIR/id_rsa.pub"
    else
        ssh-keygen -q -t rsa -b "$KEY_BITS" -N '' -C "$TARGET_USER@$SELF_ADDRESS" -f "$SSH_DIR/id_rsa"
    fi
fi

cp "$SSH_DIR/id_rsa.pub" "$PUBKEY_DROP"
chmod 644 "$PUBKEY_DROP"

touch "$KNOWN_HOSTS"
awk -v names="$SERVER_NAMES" "$KNOWN_HOSTS_FILTER" "$KNOWN_HOSTS" > "$KNOWN_HOSTS.new"
cat "$KNOWN_HOSTS.new" > "$KNOWN_HOSTS"
rm -f "$KNOWN_HOSTS.new"
printf '%s\\n' "$HOST_KEYS" >> "$KNOWN_HOSTS"

chown root:"$TARGET_GROUP" "$SSH_DIR" "$SSH_DIR/id_rsa.pub" "$KNOWN_HOSTS"
chmod 755 "$SSH_DIR"
chmod 644 "$SSH_DIR/id_rsa.pub" "$KNOWN_HOSTS"

# a reused public key may have no private key beside it
if [ -f "$SSH_DIR/id_rsa" ]; then
    chown root:"$TARGET_GROUP" "$SSH_DIR/id_rsa"
    chmod 640 "$SSH_DIR/id_rsa"
fi
"""

_SERVER_BODY = """
AUTHORIZED_KEYS="$SSH_DIR/authorized_keys"

touch "$AUTHORIZED_KEYS"
awk -v token="$CLIENT_TOKEN" -v blob="$CLIENT_KEY_BLOB" "$AUTHORIZED_KEYS_FILTER" "$AUTHORIZED_KEYS" > "$AUTHORIZED_KEYS.new"
cat "$AUTHORIZED_KEYS.new" > "$AUTHORIZED_KEYS"
rm -f "$AUTHORIZED_KEYS.new"
printf '%s\\n' "$CLIENT_KEY" >> "$AUTHORIZED_KEYS"

chown root:"$TARGET_GROUP" "$SSH_DIR" "$AUTHORIZED_KEYS"
chmod 755 "$SSH_DIR"
chmod 644 "$AUTHORIZED_KEYS"
"""


def script_filename(user: str, role: Role, run_id: Optional[str] = None) -> str:
    """Name of the payload file for ``user`` on one end."""
    if run_id:
        return f"{user}-{role.value}-{run_id}.sh"
    return f"{user}-{role.value}.sh"


def _assignments(values: List[Tuple[str, str]]) -> str:
    return "".join(f"{name}={shlex.quote(value)}\n" for name, value in values)


def _render(role: Role, values: List[Tuple[str, str]], body: str, filename: str) -> GeneratedScript:
    text = _PREAMBLE.format(role=role.value) + "\n" + _assignments(values) + _ACCOUNT + body
    return GeneratedScript(role=role, body=text, filename=filename)


def render_client_script(user: str, self_address: str, server_address: str,
                         host_key: ServerHostKey, pubkey_drop: str,
                         key_bits: Optional[int] = None,
                         run_id: Optional[str] = None) -> GeneratedScript:
    """
    Render the script that prepares the client account.

    Args:
        user: Account to provision on the client
        self_address: Client address, used in the key comment
        server_address: Server address the client will connect to
        host_key: Scanned server host key, with any cluster alias applied
        pubkey_drop: Remote path where the public key is copied for retrieval
        key_bits: RSA key size for a newly generated keypair
        run_id: Suffix that keeps payload names unique per run

    Returns:
        The rendered client script
    """
    validate_user(user)
    if server_address not in host_key.aliases:
        raise ValueError(f"Host key is not bound to server address {server_address}")

    values = [
        ("TARGET_USER", user),
        ("SELF_ADDRESS", self_address),
        ("KEY_BITS", str(key_bits or Config.KEY_BITS)),
        ("PUBKEY_DROP", pubkey_drop),
        ("SERVER_NAMES", " ".join(host_key.host_names())),
        ("HOST_KEYS", "\n".join(host_key.known_hosts_lines())),
        ("KNOWN_HOSTS_FILTER", KNOWN_HOSTS_FILTER),
    ]
    return _render(Role.CLIENT, values, _CLIENT_BODY,
                   script_filename(user, Role.CLIENT, run_id))


def render_server_script(user: str, client_user: str, client_address: str,
                         client_key: ClientPublicKey,
                         run_id: Optional[str] = None) -> GeneratedScript:
    """
    Render the script that authorizes the client key on the server.

    Args:
        user: Account to provision on the server
        client_user: Account name on the client
        client_address: Client address; with ``client_user`` it forms the
            comment token of the entry that gets replaced
        client_key: Public key retrieved from the client
        run_id: Suffix that keeps payload names unique per run

    Returns:
        The rendered server script
    """
    validate_user(user)
    validate_user(client_user)

    values = [
        ("TARGET_USER", user),
        ("CLIENT_TOKEN", f"{client_user}@{client_address}"),
        ("CLIENT_KEY", client_key.key_material.strip()),
        ("CLIENT_KEY_BLOB", client_key.blob),
        ("AUTHORIZED_KEYS_FILTER", AUTHORIZED_KEYS_FILTER),
    ]
    return _render(Role.SERVER, values, _SERVER_BODY,
                   script_filename(user, Role.SERVER, run_id))
