"""
Record schemas, operation descriptors, intents and read models
"""
from dineledger.models.dashboard import (DishAggregate,  # noqa: F401
                                         ProcessedReview, SubjectSummary,
                                         UserDashboard)
from dineledger.models.dish_stats import DishStats  # noqa: F401
from dineledger.models.intents import (BookingIntent,  # noqa: F401
                                       DishSelection, ReviewIntent)
from dineledger.models.operations import (BookTableOperation,  # noqa: F401
                                          InitializeDishStatsOperation,
                                          InitializeUserStatsOperation,
                                          Operation, SubmitReviewOperation,
                                          TransferOperation)
from dineledger.models.review import Review  # noqa: F401
from dineledger.models.user_stats import UserStats  # noqa: F401
