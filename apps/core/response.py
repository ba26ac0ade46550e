"""
Response helpers for views that build their payload by hand.

    {"success": true, "data": ..., "message": "..."}
"""

from rest_framework import status
from rest_framework.response import Response


def success_response(data=None, message='OK', http_status=status.HTTP_200_OK, **extra):
    payload = {'success': True, 'data': data, 'message': message}
    payload.update(extra)
    return Response(payload, status=http_status)


def created_response(data=None, message='Created successfully.'):
    return success_response(data=data, message=message, http_status=status.HTTP_201_CREATED)
