# Centralized Firestore path helpers
# /places/{place_id}, /regions/{region_id}
# /users/{uid}/collections/{entry_id}, /users/{uid}/reward_grants/{grant_id}
# /draw_quotas/{identity}/days/{yyyy-mm-dd}
# /draw_logs/{session_id}
# /sponsor_links/{link_id}, /sponsor_rewards/{reward_id}

def places_col(db):
    return db.collection("places")


def region_doc(db, region_id: str):
    return db.collection("regions").document(str(region_id))


def user_doc(db, user_id: str):
    return db.collection("users").document(user_id)


def collections_col(db, user_id: str):
    return user_doc(db, user_id).collection("collections")


def reward_grants_col(db, user_id: str):
    return user_doc(db, user_id).collection("reward_grants")


def quota_day_doc(db, identity: str, day: str):
    return db.collection("draw_quotas").document(identity).collection("days").document(day)


def draw_logs_col(db):
    return db.collection("draw_logs")


def sponsor_links_col(db):
    return db.collection("sponsor_links")


def sponsor_rewards_col(db):
    return db.collection("sponsor_rewards")


def sponsor_reward_doc(db, reward_id: str):
    return sponsor_rewards_col(db).document(reward_id)
