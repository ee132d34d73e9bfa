"""larder - household inventory, meal planning and shopping lists."""
