from datetime import timedelta

from fastapi import APIRouter, Depends
from pymongo.database import Database

from database import get_db, utcnow
from security import Identity, require_role

router = APIRouter(prefix="/dashboard", tags=["dashboard"])

RECENT_DAYS = 7


@router.get("/summary")
def summary(_: Identity = Depends(require_role()), db: Database = Depends(get_db)):
    pipeline = [
        {"$group": {"_id": None, "revenue": {"$sum": "$total_price"}, "orders": {"$sum": 1}}},
    ]
    rows = list(db["order"].aggregate(pipeline))
    total_revenue = float(rows[0]["revenue"]) if rows else 0.0
    number_of_orders = int(rows[0]["orders"]) if rows else 0
    since = utcnow() - timedelta(days=RECENT_DAYS)
    return {
        "total_revenue": total_revenue,
        "number_of_orders": number_of_orders,
        "average_order_value": total_revenue / number_of_orders if number_of_orders else 0,
        "new_orders": db["order"].count_documents({"created_at": {"$gte": since}}),
        "new_customers": db["customer"].count_documents({"created_at": {"$gte": since}}),
    }
