"""Hold orders app package.

Reserve-now/pay-later flight bookings: the hold state machine and its
lazy expiry, fare condition quotes for change and cancellation, and
ancillary fee totals. Expiry is derived from the payment deadline on
every read, so the periodic tasks in ``tasks.py`` only tidy up storage.
"""
