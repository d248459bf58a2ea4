# examples/registry_demo.py
# Run with: python examples/registry_demo.py
#
# Walks through a small audit story: the admin registers a report, shares it
# with one reader, a stranger is refused, admin hands over control, and the
# resulting log is verified offline with only the notary public key.

from fileledger import (
    AuditVerifier,
    CallerSession,
    FileLedger,
    NotaryKeyPair,
    Unauthorized,
)
from fileledger.logging import configure_logging


if __name__ == "__main__":
    configure_logging(level="INFO")

    notary = NotaryKeyPair.generate()
    ledger = FileLedger("memory:", notary, deployer="0xA11CE")

    alice = CallerSession(ledger, "0xA11CE")
    bob = CallerSession(ledger, "0xB0B")
    carol = CallerSession(ledger, "0xCA201")

    alice.add_file(1, "QmYwAPJzv5CZsnA625s3Xf2nemtYgPpHdWEz79ojWnPbdG", "report.pdf")
    alice.authorize_user(1, bob.identity)

    print("Bob fetches locator:", bob.access_file(1))
    bob.log_sub_file(1, "appendix.docx")

    try:
        carol.access_file(1)
    except Unauthorized as e:
        print("Carol refused:", e)

    alice.transfer_ownership(carol.identity)
    print("Administrator now:", ledger.administrator)

    print("\nAudit log:")
    for event in ledger.events():
        print(f"  #{event.sequence} {event.timestamp} {event.kind.value:22} "
              f"file={event.file_id} detail={event.detail} actor={event.actor}")

    # An outside auditor needs only the public key
    auditor = AuditVerifier(trusted_keys=[notary.public_key_b64url()])
    print("\n" + str(auditor.verify(ledger.events())))

    ledger.close()
