from coauthor.models.user import User
from coauthor.models.upcoming_book import UpcomingBook
from coauthor.models.coupon import Coupon
from coauthor.models.authorship_purchase import AuthorshipPurchase
from coauthor.models.payment_event import PaymentEvent

# add ALL models here
