import uuid
import hashlib
import platform
import psutil

def _mac_address() -> str:
    node = uuid.getnode()
    return ':'.join('{:02x}'.format((node >> shift) & 0xff) for shift in range(40, -1, -8))

def get_hardware_fingerprint() -> str:
    """
    Generate a stable hardware fingerprint for this machine.
    Combines MAC address, CPU count and platform into a single hash.
    """
    parts = [
        _mac_address(),
        str(psutil.cpu_count(logical=True)),
        platform.system(),
        platform.machine(),
    ]
    return hashlib.sha256("|".join(parts).encode()).hexdigest()

def default_client_id(installation_id: str) -> str:
    """
    Client identifier sent with lease requests when none is configured.

    Two installations on the same machine get different identifiers.
    """
    return f"{get_hardware_fingerprint()[:16]}-{installation_id[:8]}"
