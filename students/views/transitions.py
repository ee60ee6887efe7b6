"""JSON endpoints for level transitions."""
from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_POST

from students import transitions
from .utils import get_id, parse_payload, transition_endpoint


def serialize_progress(progress):
    student = progress.student
    registration = progress.pending_registration
    return {
        'id': progress.pk,
        'student_id': progress.student_id,
        'student_name': student.full_name,
        'student_email': student.email,
        'level_id': progress.level_id,
        'class_id': progress.class_assigned_id,
        'status': progress.status,
        'status_label': progress.get_status_display(),
        'final_grade': float(progress.final_grade) if progress.final_grade is not None else None,
        'attempt': progress.attempt,
        'start_date': progress.start_date.isoformat(),
        'end_date': progress.end_date.isoformat() if progress.end_date else None,
        'pending_registration_id': progress.pending_registration_id,
        'pending_enrollment_number': registration.enrollment_number if registration else None,
        'pending_period': registration.period if registration else None,
    }


@require_GET
@transition_endpoint
def awaiting(request, level_id):
    """Students at a level waiting for a decision, plus next-level classes."""
    result = transitions.get_awaiting(level_id)
    next_level = result.next_level
    return JsonResponse({
        'level_id': result.level.pk,
        'next_level_id': next_level.pk if next_level else None,
        'next_level_name': next_level.name if next_level else None,
        'default_period': transitions.default_period(),
        'data': [serialize_progress(p) for p in result.records],
        'next_level_classes': [c.to_dict() for c in result.next_level_classes],
    })


@csrf_exempt
@require_POST
@transition_endpoint
def renew(request):
    payload = parse_payload(request)
    result = transitions.renew(
        get_id(payload, 'student_id'),
        get_id(payload, 'level_id'),
        period=payload.get('period'),
        enrollment_fee=payload.get('enrollment_fee'),
        monthly_fee=payload.get('monthly_fee'),
    )
    return JsonResponse(
        {
            'enrollment_number': result.enrollment_number,
            'already_exists': result.already_exists,
        },
        status=200 if result.already_exists else 201
    )


@csrf_exempt
@require_POST
@transition_endpoint
def confirm_renewal(request):
    payload = parse_payload(request)
    result = transitions.confirm_renewal(
        get_id(payload, 'pending_registration_id'),
        get_id(payload, 'destination_class_id'),
        payment_status=payload.get('payment_status'),
    )
    return JsonResponse({'message': result.message})


@csrf_exempt
@require_POST
@transition_endpoint
def promote(request):
    payload = parse_payload(request)
    result = transitions.promote(
        get_id(payload, 'student_id'),
        get_id(payload, 'level_id'),
        get_id(payload, 'destination_class_id', required=False),
    )
    return JsonResponse({
        'message': result.message,
        'course_completed': result.course_completed,
        'next_level': result.progress.level.name if result.progress else None,
    })


@csrf_exempt
@require_POST
@transition_endpoint
def fail(request):
    payload = parse_payload(request)
    transitions.fail(
        get_id(payload, 'student_id'),
        get_id(payload, 'level_id'),
    )
    return JsonResponse({})


@csrf_exempt
@require_POST
@transition_endpoint
def repeat(request):
    payload = parse_payload(request)
    result = transitions.repeat(
        get_id(payload, 'student_id'),
        get_id(payload, 'level_id'),
        get_id(payload, 'destination_class_id', required=False),
    )
    return JsonResponse({'attempt': result.progress.attempt})


@csrf_exempt
@require_POST
@transition_endpoint
def withdraw(request):
    payload = parse_payload(request)
    transitions.withdraw(
        get_id(payload, 'student_id'),
        get_id(payload, 'level_id'),
    )
    return JsonResponse({})


@require_GET
@transition_endpoint
def student_history(request, student_id):
    """Every level and attempt of a student."""
    records = transitions.get_student_history(student_id)
    data = []
    for progress in records:
        entry = serialize_progress(progress)
        entry.update({
            'level_name': progress.level.name,
            'class_name': progress.class_assigned.name if progress.class_assigned else None,
            'is_terminal': progress.is_terminal,
            'superseded': progress.superseded,
        })
        data.append(entry)
    return JsonResponse({'student_id': student_id, 'data': data})
