from .tenant import Tenant
from .branch import Branch
from .resource import Resource
from .user import User, UserRole, RoleName
from .guest import Guest
from .discount import Discount, DiscountType, DiscountConditionType, discount_resources
from .booking import Booking, BookingStatus, BookingSource, ACTIVE_STATUSES
from .booking_cancellation import BookingCancellation
from .survey_response import SurveyResponse
