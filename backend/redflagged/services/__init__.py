from .vehicle_history import fetch_vehicle_history
from .market_listings import fetch_market_data
from .disaster_geography import collect_disaster_geography
from .seller_signals import collect_seller_signals
from .vehicle_recalls import fetch_vehicle_recalls
from .red_flags import generate_red_flags
from .data_quality import assess_data_quality
from .verdict_assembly import assemble_verdict
from .vehicle_analysis import analyze_vehicle

__all__ = [
    "fetch_vehicle_history",
    "fetch_market_data",
    "collect_disaster_geography",
    "collect_seller_signals",
    "fetch_vehicle_recalls",
    "generate_red_flags",
    "assess_data_quality",
    "assemble_verdict",
    "analyze_vehicle",
]
