# Routes package init
"""
Streak Engine — API Routes Package
====================================

Route Inventory:
    - jobs.py:     POST /jobs/update-streaks          (run the daily job)
    - streaks.py:  GET  /api/streaks/{user_id}         (user streak)
                   GET  /api/circles/{id}/streak       (circle streak)
    - health.py:   GET  /health                        (store connectivity)

Routes stay thin: they resolve the store, call a service and shape the response.
"""
