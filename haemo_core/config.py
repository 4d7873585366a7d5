"""
HaemoFlow Core Configuration
"""

# Blood groups in the order they appear in the compatibility graph
BLOOD_TYPES = ["O-", "O+", "A-", "A+", "B-", "B+", "AB-", "AB+"]

URGENCY_LEVELS = ["low", "medium", "high", "critical"]

# Donor ranking (pre-notification)
DONOR_SCORING_CONFIG = {
    "weights": {
        "distance": 0.30,
        "history": 0.25,
        "responsiveness": 0.25,
        "time_of_day": 0.10,
        "health": 0.10,
    },
    "never_donated_days": 365,       # Treated as a one-year-old donation
    "new_donor_responsiveness": 50,
    "default_avg_response_minutes": 10,
}

# Facility stock ranking
INVENTORY_SCORING_CONFIG = {
    "weights": {
        "proximity": 0.40,
        "expiry": 0.30,
        "quantity": 0.20,
        "feasibility": 0.10,
    },
    "max_distance_km": 200,
    "daily_usage_units": 2,
    "safety_days": 3,
}

# Post-acceptance donor arbitration
MATCH_SCORING_CONFIG = {
    "weights": {
        "eta": 0.40,
        "distance": 0.30,
        "reliability": 0.20,
        "health": 0.10,
    },
    "max_eta_minutes": 120,
    "max_distance_km": 50,
    "default_reliability": 0.5,
    "travel_speed_kmh": 40,
    "prep_minutes": 25,
}

# Shortage detection
SHORTAGE_CONFIG = {
    "threshold_days": 3,
    "default_daily_usage": 2,
    "target_days_of_stock": 5,
    "auto_alert_fraction": 0.4,      # Stock below 40% of minimum raises an alert
    "dedupe_window_hours": 4,
    "search_radius_km": {"critical": 20, "high": 35, "medium": 50, "low": 75},
    "default_search_radius_km": 35,
    "urgency_points": {"critical": 40, "high": 30, "medium": 20, "low": 10},
    "rare_type_threshold": 8,
}

# Rarity used for urgency bands (0-10)
BLOOD_TYPE_RARITY = {
    "AB-": 10, "O-": 10, "B-": 9, "AB+": 8,
    "A-": 7, "B+": 5, "A+": 4, "O+": 3,
}
DEFAULT_RARITY = 5

# Rarity points used inside the 0-100 priority score
BLOOD_TYPE_PRIORITY_POINTS = {
    "AB-": 30, "O-": 30, "B-": 25, "A-": 20,
    "AB+": 15, "B+": 12, "A+": 10, "O+": 8,
}
DEFAULT_PRIORITY_POINTS = 15

# Donor matching
DONOR_MATCHING_CONFIG = {
    "min_notify": 10,
    "max_notify": 50,
    "notify_per_unit": 2,
    # Trigger inventory search in parallel when eligible donors are at or below these counts
    "inventory_trigger": {"critical": 5, "high": 2, "medium": 0},
    "notification_workers": 8,
}

# Inventory search
INVENTORY_CONFIG = {
    "min_days_to_expiry": 7,
    "ambulance_max_km": 15,
    "provisional_speed_kmh": 40,
}

# Logistics
LOGISTICS_CONFIG = {
    "avg_speed_kmh": 40,
    "pickup_delay_minutes": 15,
    "cold_chain_max_minutes": 360,
    "method_factor": {"ambulance": 0.7, "courier": 1.0, "scheduled": 1.2},
    "scheduled_batch_delay_minutes": 60,
    "ambulance_max_km": 15,
    "courier_max_km": 50,
    "donor_prep_minutes": 25,
    "donor_speeds_kmh": {
        "walking": 5,
        "bicycle": 15,
        "public_transport": 25,
        "car": 40,
        "motorcycle": 50,
    },
    # Modes that sit in traffic
    "traffic_modes": ["public_transport", "car", "motorcycle"],
}

# Donor eligibility
ELIGIBILITY_CONFIG = {
    "min_age": 18,
    "max_age": 65,
    "min_weight_kg": 50,
    "min_bmi": 18.5,
    "min_hemoglobin": 12.5,
    "hemoglobin_by_gender": {"male": 13.0, "female": 12.5},
    "donation_interval_days": {"male": 90, "female": 120},
    "donation_interval_months": {"male": 3, "female": 4},
    "disease_tests": {
        "hiv_test": "HIV Test",
        "hepatitis_b_test": "Hepatitis B Test",
        "hepatitis_c_test": "Hepatitis C Test",
        "syphilis_test": "Syphilis Test",
        "malaria_test": "Malaria Test",
    },
    # Failing any of these can never be approved
    "hard_criteria": ["Age", "Weight", "Hemoglobin"],
}

# Verification workflow
VERIFICATION_CONFIG = {
    "max_document_attempts": 3,
    "suspension_days": 14,
}

# Response tokens
TOKEN_CONFIG = {
    "expiry_ms": 4 * 60 * 60 * 1000,
    "response_window_minutes": 60,
}

# Outcome tracking
OUTCOME_CONFIG = {
    "history_days": 30,
    "default_response_rate": 0.3,
}
