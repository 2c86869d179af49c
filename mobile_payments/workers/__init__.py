"""Background workers. Run the sweeper with ``python -m mobile_payments.workers.sweeper``."""
