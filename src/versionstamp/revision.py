import logging
from urllib.parse import quote_plus

from .store import RevisionDocument

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 5


class RevisionExhaustedError(RuntimeError):
    """Raised when a revision could not be persisted within the attempt limit."""


def encode_key(value):
    """Encode like JavaScript's encodeURIComponent, with spaces as '+'"""
    return quote_plus(value, safe="!~*'()")


def optimistic_retry(fetch, mutate, persist, max_attempts=MAX_ATTEMPTS, describe="operation"):
    """
    Run a fetch/mutate/persist cycle until persist succeeds.

    ``fetch()`` returns the current state, ``mutate(state)`` returns the
    state to write together with the value to hand back, and
    ``persist(original, updated)`` writes it. Any exception restarts the
    cycle from a fresh fetch so a concurrent writer's change is seen on the
    next attempt.
    """
    attempts = 1
    while attempts <= max_attempts:
        try:
            current = fetch()
            updated, result = mutate(current)
            persist(current, updated)
            return result
        except Exception as e:
            logger.debug(f"Attempt {attempts}/{max_attempts} of {describe} failed: {e!r}")
        attempts += 1

    raise RevisionExhaustedError(f"Could not complete {describe} after {max_attempts} attempts. Giving up.")


class RevisionCounter:
    """Create-or-increment revision numbers stored per product in a DocumentStore"""

    def __init__(self, store, max_attempts=MAX_ATTEMPTS):
        self.store = store
        self.max_attempts = max_attempts

    def _compute(self, document, document_id, encoded_key, revision_key, product_name,
                 should_override, override_value):
        # A falsy override value (None or 0) is treated as 0.
        if document is None:
            new_revision = (override_value or 0) if should_override else 0
            logger.debug(f"Creating the revisions document for '{product_name}' with '{revision_key}' at {new_revision}...")
            return RevisionDocument(id=document_id, revisions={encoded_key: new_revision}), new_revision

        current = document.revisions.get(encoded_key)
        if current is not None:
            if should_override:
                new_revision = override_value or 0
                logger.debug(f"A revision of '{current}' already exists for '{revision_key}' of '{product_name}'. "
                             f"Setting it to the override value of '{new_revision}'...")
            else:
                new_revision = current + 1
                logger.debug(f"A revision of '{current}' already exists for '{revision_key}' of '{product_name}'. "
                             f"Incrementing it to '{new_revision}'...")
        else:
            new_revision = (override_value or 0) if should_override else 0
            logger.debug(f"An initial revision of '{new_revision}' will be created for '{revision_key}' of '{product_name}'.")

        document.revisions[encoded_key] = new_revision
        return document, new_revision

    def next_revision(self, product_name, revision_key, should_override=False, override_value=None):
        """Return the next revision for the key and persist it"""
        document_id = encode_key(product_name)
        encoded_key = encode_key(revision_key)

        def fetch():
            logger.debug(f"Getting existing revisions for '{product_name}'...")
            return self.store.get(document_id)

        def mutate(document):
            return self._compute(document, document_id, encoded_key, revision_key, product_name,
                                 should_override, override_value)

        def persist(original, updated):
            if original is None:
                self.store.create(updated)
            else:
                self.store.update(updated)
            logger.debug(f"Saved the revisions document for '{product_name}'.")

        return optimistic_retry(fetch, mutate, persist, self.max_attempts,
                                describe=f"updating the revision for '{revision_key}' of '{product_name}'")

    def peek_revision(self, product_name, revision_key, should_override=False, override_value=None):
        """Return the revision next_revision would produce, without saving it"""
        document_id = encode_key(product_name)
        encoded_key = encode_key(revision_key)
        document = self.store.get(document_id)
        _, new_revision = self._compute(document, document_id, encoded_key, revision_key, product_name,
                                        should_override, override_value)
        return new_revision
