from .db import db, atomic, begin_write
from .court import Court
from .court_block import CourtBlock
from .rate_rule import RateRule
from .reservation import Reservation
from .reservation_court import ReservationCourt
from .reservation_share import ReservationShare
