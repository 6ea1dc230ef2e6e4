# utils/cancellation.py
class CancellationToken:
    """Cooperative cancellation flag for one download run.

    Long-running operations poll ``cancelled`` at every suspension point;
    cancelling never interrupts a write that has already started.
    """

    def __init__(self):
        self._cancelled = False

    def cancel(self):
        self._cancelled = True

    @property
    def cancelled(self):
        return self._cancelled

    def __repr__(self):
        return f'<CancellationToken cancelled={self._cancelled}>'
