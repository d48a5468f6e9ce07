from .health import health_bp
from .courts import court_bp
from .prices import prices_bp
from .availability import availability_bp
from .reservations import reservations_bp
from .recurring import recurring_bp
from .payments import payments_bp
from .stripe_webhook import webhook_bp
