"""Link Rules service application package."""
