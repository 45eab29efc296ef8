"""
Activity-threshold zero-knowledge proof toolkit.

⚠️ DRAFT — requires crypto review before production use
"""

__version__ = "0.1.0"

DISCLAIMER = """
⚠️  EXPERIMENTAL - NOT PRODUCTION READY

The reference backend evaluates the activity statement in Python and binds
the public signals with a digest. It is NOT a zero-knowledge proof system.
Use the snarkjs backend with audited circuit artifacts for real proofs.
"""


def print_disclaimer() -> None:
    print(DISCLAIMER)
