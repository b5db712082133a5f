from django.urls import path
from . import views

urlpatterns = [
    path("availability/", views.availability, name="availability"),
    path("book-appointment/", views.book_appointment, name="book-appointment"),
    path("doctors/", views.doctor_list, name="doctor-list"),
    path("patient-lookup/", views.patient_lookup, name="patient-lookup"),
]
