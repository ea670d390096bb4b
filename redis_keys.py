REDIS_PROJECT_KEY = "project:meta:{project_id}" # project id - hash of name, description, code, created_at
REDIS_PROJECT_INDEX_KEY = "project:index" # set of all project ids
REDIS_MESSAGES_KEY = "project:messages:{project_id}" # project id - list of chat message texts, append order

# **Example `project:meta:{id}` hash fields**
# - `id` = `{projectId}`
# - `name` = display name
# - `description` = free text (may be empty)
# - `code` = full current code buffer, overwritten on every edit
# - `created_at` = ISO timestamp
