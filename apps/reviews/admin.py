from django.contrib import admin  # type: ignore

from .models import Review


@admin.register(Review)
class ReviewAdmin(admin.ModelAdmin):
    list_display = ('experience', 'user_id', 'rating', 'created_at')
    list_filter = ('rating',)
    search_fields = ('user_id', 'experience__title', 'comment')
    readonly_fields = ('user_id', 'experience', 'rating', 'created_at')
