import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Course',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(help_text='e.g., English, Spanish for Beginners', max_length=100)),
                ('code', models.CharField(help_text='e.g., ENG, SPA', max_length=10, unique=True)),
                ('has_levels', models.BooleanField(default=True, help_text='Whether students progress through ordered levels')),
                ('description', models.TextField(blank=True)),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name': 'Course',
                'verbose_name_plural': 'Courses',
                'ordering': ['name'],
            },
        ),
        migrations.CreateModel(
            name='Level',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('level_number', models.PositiveSmallIntegerField(help_text='1, 2, 3, etc.')),
                ('name', models.CharField(help_text='e.g., Beginner, Intermediate', max_length=100)),
                ('order', models.PositiveSmallIntegerField(help_text='Position of the level within the course')),
                ('duration_months', models.PositiveSmallIntegerField(default=6)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('course', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='levels', to='academics.course')),
                ('prerequisite_level', models.ForeignKey(blank=True, help_text='The level a student must complete before this one', null=True, on_delete=django.db.models.deletion.PROTECT, related_name='unlocks', to='academics.level')),
            ],
            options={
                'verbose_name': 'Level',
                'verbose_name_plural': 'Levels',
                'ordering': ['course', 'order'],
                'unique_together': {('course', 'level_number')},
            },
        ),
        migrations.CreateModel(
            name='Class',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('section', models.CharField(help_text='A, B, C, etc.', max_length=5)),
                ('name', models.CharField(editable=False, help_text='Auto-generated: ENG1-A, SPA3-B', max_length=20)),
                ('capacity', models.PositiveIntegerField(default=30, help_text='Maximum number of students')),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('level', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='classes', to='academics.level')),
            ],
            options={
                'verbose_name': 'Class',
                'verbose_name_plural': 'Classes',
                'ordering': ['level', 'section'],
                'unique_together': {('level', 'section')},
            },
        ),
    ]
