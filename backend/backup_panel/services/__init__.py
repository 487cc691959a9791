"""Services wrapping the backup tool and the login flow."""
