"""MealMate backend: meal logging, nutrition analytics and the chat nutrition agent."""
