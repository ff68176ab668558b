"""Print a freshly generated key for INTEGRATION_SECRETS_KEY_<id>."""
from .config import generate_master_key

if __name__ == "__main__":
    print(generate_master_key())
