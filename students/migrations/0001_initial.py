import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('academics', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='Student',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('first_name', models.CharField(max_length=100)),
                ('last_name', models.CharField(max_length=100)),
                ('email', models.EmailField(blank=True, max_length=254)),
                ('student_code', models.CharField(help_text='Unique student ID', max_length=50, unique=True)),
                ('status', models.CharField(choices=[('active', 'Active'), ('graduated', 'Graduated'), ('withdrawn', 'Withdrawn'), ('suspended', 'Suspended')], default='active', max_length=20)),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name': 'Student',
                'verbose_name_plural': 'Students',
                'ordering': ['last_name', 'first_name'],
            },
        ),
        migrations.CreateModel(
            name='PendingRegistration',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('period', models.CharField(help_text='e.g., 2026/1', max_length=20)),
                ('enrollment_fee', models.DecimalField(decimal_places=2, default=0, max_digits=10)),
                ('monthly_fee', models.DecimalField(decimal_places=2, default=0, max_digits=10)),
                ('enrollment_number', models.CharField(max_length=30, unique=True)),
                ('confirmed', models.BooleanField(default=False)),
                ('confirmed_at', models.DateTimeField(blank=True, null=True)),
                ('payment_status', models.CharField(blank=True, choices=[('paid', 'Paid'), ('pending', 'Pending')], max_length=20)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('student', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='pending_registrations', to='students.student')),
                ('target_level', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='pending_registrations', to='academics.level')),
            ],
            options={
                'verbose_name': 'Pending Registration',
                'verbose_name_plural': 'Pending Registrations',
                'ordering': ['-created_at'],
                'constraints': [
                    models.UniqueConstraint(condition=models.Q(('confirmed', False)), fields=('student', 'target_level'), name='unique_open_renewal'),
                ],
            },
        ),
        migrations.CreateModel(
            name='StudentLevelProgress',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('status', models.CharField(choices=[('in_progress', 'In progress'), ('awaiting_transition', 'Awaiting transition'), ('awaiting_renewal', 'Awaiting renewal'), ('recovery', 'Recovery'), ('passed', 'Passed'), ('failed', 'Failed'), ('withdrawn', 'Withdrawn')], default='in_progress', max_length=20)),
                ('final_grade', models.DecimalField(blank=True, decimal_places=2, max_digits=4, null=True)),
                ('attempt', models.PositiveSmallIntegerField(default=1)),
                ('start_date', models.DateField(default=django.utils.timezone.localdate)),
                ('end_date', models.DateField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('class_assigned', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='progress_records', to='academics.class')),
                ('level', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='progress_records', to='academics.level')),
                ('pending_registration', models.ForeignKey(blank=True, help_text='Open renewal request towards the next level', null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='source_progress', to='students.pendingregistration')),
                ('promoted_from', models.ForeignKey(blank=True, help_text='The record this one supersedes', null=True, on_delete=django.db.models.deletion.PROTECT, related_name='promoted_to', to='students.studentlevelprogress')),
                ('student', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='level_progress', to='students.student')),
            ],
            options={
                'verbose_name': 'Student Level Progress',
                'verbose_name_plural': 'Student Level Progress',
                'ordering': ['level__order', 'student__last_name', 'student__first_name', 'attempt'],
                'indexes': [
                    models.Index(fields=['level', 'status'], name='progress_level_status_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(fields=('student', 'level', 'attempt'), name='unique_progress_attempt'),
                    models.CheckConstraint(condition=models.Q(('attempt__gte', 1)), name='progress_attempt_positive'),
                ],
            },
        ),
    ]
