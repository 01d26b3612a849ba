"""
Periodic activities
===================

Cooperative scheduler running callbacks every given number of ticks.

The model runner ticks it once per processed record. Callbacks run
synchronously inside :meth:`PeriodicActivityManager.tick`, one after the other.

"""
from collections import namedtuple


PeriodicActivityRequest = namedtuple(
    "PeriodicActivityRequest", ["repeating", "period", "callback"]
)


class _Activity:
    __slots__ = ("request", "countdown")

    def __init__(self, request):
        self.request = request
        self.countdown = request.period


class PeriodicActivityManager:
    """Run a fixed set of activities at independent intervals

    Parameters
    ----------
    requested_activities: list of PeriodicActivityRequest
        ``(repeating, period, callback)`` triplets. A repeating activity fires
        every `period` ticks, a one-shot activity fires once at tick `period`.

    """

    def __init__(self, requested_activities):
        self._activities = []
        for request in requested_activities:
            if request.period < 1:
                raise ValueError(
                    f"Period of activity {request.callback} must be at least 1, "
                    f"got {request.period}"
                )
            self._activities.append(_Activity(request))

    def tick(self):
        """Advance every active countdown by one tick and run the due callbacks

        Exceptions raised by a callback propagate to the caller.
        """
        for activity in self._activities:
            if activity.countdown is None:
                continue

            activity.countdown -= 1
            if activity.countdown > 0:
                continue

            if activity.request.repeating:
                activity.countdown = activity.request.period
            else:
                activity.countdown = None

            activity.request.callback()
