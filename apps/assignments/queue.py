from collections import OrderedDict


class AssignmentQueue:
    """
    Pending assignment offers in arrival order.

    The head of the queue is the active offer, the one presented to the
    waiter. Offers can be removed from any position, e.g. when a timeout
    arrives for an offer queued behind the active one.
    """

    def __init__(self):
        self._offers = OrderedDict()

    def __len__(self):
        return len(self._offers)

    def __iter__(self):
        return iter(list(self._offers.values()))

    def __contains__(self, assignment_id):
        return assignment_id in self._offers

    def enqueue(self, offer):
        """Append ``offer`` to the tail. Returns False for a duplicate id."""
        if offer.assignment_id in self._offers:
            return False
        self._offers[offer.assignment_id] = offer
        return True

    def remove(self, assignment_id):
        """Remove and return the offer with ``assignment_id``, or None if absent."""
        return self._offers.pop(assignment_id, None)

    def active_offer(self):
        """The current head, or None when the queue is empty."""
        for offer in self._offers.values():
            return offer
        return None

    def offers(self):
        return list(self._offers.values())
